"""
Shared CLI utilities.
"""
from typing import Optional

from core.errors import describe_error
from core.models import FeeTier


def prompt(prompt_text: str) -> str:
    """Prompt user for input with EOF handling."""
    try:
        return input(prompt_text)
    except EOFError:
        return ""


def input_amount(prompt_text: str) -> Optional[str]:
    """Prompt for a decimal amount. Returned as text so no precision is lost."""
    val = prompt(prompt_text).strip()
    if val == "":
        return None
    try:
        float(val)
    except ValueError:
        print("Invalid number.")
        return None
    return val


def input_slippage(default: float = 1.0) -> Optional[float]:
    val = prompt(f"Slippage % (0.1 - 100) [{default}]: ").strip()
    if val == "":
        return default
    try:
        return float(val)
    except ValueError:
        print("Invalid slippage.")
        return None


def input_fee_tier() -> Optional[FeeTier]:
    tiers = FeeTier.ordered()
    print("Fee tiers:")
    for i, tier in enumerate(tiers, start=1):
        print(f"  {i}) {tier.percent}%")
    val = prompt(f"Choose 1-{len(tiers)} [3]: ").strip() or "3"
    try:
        index = int(val)
    except ValueError:
        index = 0
    if not 1 <= index <= len(tiers):
        print("Invalid fee tier.")
        return None
    return tiers[index - 1]


def print_error(exc: BaseException) -> None:
    info = describe_error(exc)
    print(f"Error: {info['error']}")
    if info.get("details") and info["details"] != info["error"]:
        print(f"  Details: {info['details']}")
    if info.get("reason"):
        print(f"  Revert reason: {info['reason']}")
