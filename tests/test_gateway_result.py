from portal.gateway_result import GatewayResult


def test_rows_map_to_ok_or_empty():
    assert GatewayResult.from_rows([1]).is_ok
    empty = GatewayResult.from_rows([])
    assert empty.is_empty
    assert empty.lenient() == []
    assert GatewayResult.from_rows(None).data == []


def test_failure_keeps_kind_and_lenient_sentinel():
    failed = GatewayResult.failed("forbidden", "not your section", fallback=False)

    assert failed.is_error
    assert failed.error == "forbidden"
    assert failed.detail == "not your section"
    assert failed.data is None
    assert failed.lenient() is False


def test_ok_lenient_is_data():
    assert GatewayResult.ok(True).lenient() is True
    assert GatewayResult.empty(None).lenient() is None
