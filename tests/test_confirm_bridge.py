from concurrent.futures import CancelledError

import pytest

from batchrun.engine.confirm_bridge import ConfirmBridge


def test_register_allocates_increasing_ids():
    bridge = ConfirmBridge()
    first, _ = bridge.register()
    second, _ = bridge.register()
    assert second > first
    assert bridge.pending_ids() == [first, second]


def test_respond_resolves_future():
    bridge = ConfirmBridge()
    request_id, answer = bridge.register()
    assert bridge.respond(request_id, False) is True
    assert answer.result(timeout=1) is False
    assert bridge.pending_ids() == []


def test_respond_unknown_id_is_ignored():
    bridge = ConfirmBridge()
    assert bridge.respond(999, True) is False


def test_close_abandons_pending_requests():
    bridge = ConfirmBridge()
    _, answer = bridge.register()
    bridge.close()
    with pytest.raises(CancelledError):
        answer.result(timeout=1)
