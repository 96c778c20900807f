from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from core.errors import NonceReconciliationError
from core.nonce import NonceSequencer

ADDR = "0x" + "ab" * 20
OTHER = "0x" + "cd" * 20


def test_adopts_chain_value_then_increments_while_node_lags():
    # the node keeps reporting a stale pending count
    seq = NonceSequencer(lambda addr: 5)
    assert [seq.next(ADDR) for _ in range(3)] == [5, 6, 7]
    assert seq.peek(ADDR) == 7


def test_adopts_chain_value_when_cache_is_behind():
    chain = {"n": 5}
    seq = NonceSequencer(lambda addr: chain["n"])
    assert seq.next(ADDR) == 5
    chain["n"] = 12  # transactions sent from elsewhere
    assert seq.next(ADDR) == 12
    assert seq.next(ADDR) == 13


def test_addresses_are_independent_and_case_insensitive():
    seq = NonceSequencer(lambda addr: 0)
    assert seq.next(ADDR) == 0
    assert seq.next(OTHER) == 0
    assert seq.next(ADDR.upper().replace("0X", "0x")) == 1


def test_concurrent_calls_never_reuse_a_nonce():
    seq = NonceSequencer(lambda addr: 3)
    with ThreadPoolExecutor(max_workers=16) as pool:
        issued = list(pool.map(lambda _: seq.next(ADDR), range(200)))
    assert sorted(issued) == list(range(3, 203))


def test_slow_read_for_one_address_does_not_block_another():
    release = threading.Event()
    entered = threading.Event()

    def fetch(addr):
        if addr == ADDR:
            entered.set()
            release.wait(timeout=5)
        return 0

    seq = NonceSequencer(fetch)
    t = threading.Thread(target=seq.next, args=(ADDR,))
    t.start()
    assert entered.wait(timeout=5)
    assert seq.next(OTHER) == 0  # returns while ADDR's read is still blocked
    release.set()
    t.join(timeout=5)


def test_read_failure_continues_from_cache():
    calls = {"n": 0}

    def fetch(addr):
        calls["n"] += 1
        if calls["n"] > 1:
            raise ConnectionError("rpc down")
        return 9

    seq = NonceSequencer(fetch)
    assert seq.next(ADDR) == 9
    assert seq.next(ADDR) == 10
    assert seq.next(ADDR) == 11


def test_read_failure_without_cache_retries_once():
    calls = {"n": 0}

    def fetch(addr):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConnectionError("transient")
        return 4

    seq = NonceSequencer(fetch)
    assert seq.next(ADDR) == 4
    assert calls["n"] == 2


def test_read_failure_without_cache_propagates():
    def fetch(addr):
        raise ConnectionError("rpc down")

    seq = NonceSequencer(fetch)
    with pytest.raises(NonceReconciliationError):
        seq.next(ADDR)
    assert seq.peek(ADDR) is None


def test_invalidate_readopts_chain_value():
    seq = NonceSequencer(lambda addr: 5)
    assert seq.next(ADDR) == 5
    assert seq.next(ADDR) == 6
    seq.invalidate(ADDR)
    assert seq.peek(ADDR) is None
    assert seq.next(ADDR) == 5


def test_sequential_calls_increase_even_when_reads_go_stale():
    reads = iter([4, 4, 2, 9, 3, 3, 10, 0])
    seq = NonceSequencer(lambda addr: next(reads))
    issued = [seq.next(ADDR) for _ in range(8)]
    assert issued == [4, 5, 6, 9, 10, 11, 12, 13]
    assert all(a < b for a, b in zip(issued, issued[1:]))
