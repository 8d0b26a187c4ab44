from critique.utils.response import error_response, stage_error, stage_success, success_response


def test_success_response_with_data():
    result = success_response(data={"key": "value"})
    assert result == {"status": "success", "data": {"key": "value"}, "message": None}


def test_success_response_with_message():
    result = success_response(data=None, message="Session archived")
    assert result == {"status": "success", "data": None, "message": "Session archived"}


def test_error_response():
    result = error_response("Validation failed")
    assert result == {"status": "error", "data": None, "message": "Validation failed"}


def test_error_response_with_data():
    result = error_response("Conflict", data={"current": "completed"})
    assert result == {"status": "error", "data": {"current": "completed"}, "message": "Conflict"}


def test_stage_success():
    assert stage_success(sessionId="s-1") == {"success": True, "sessionId": "s-1"}


def test_stage_error():
    result = stage_error("All analyzers failed", "analysis", sessionId="s-1")
    assert result == {"success": False, "error": "All analyzers failed", "stage": "analysis", "sessionId": "s-1"}
