"""Shared fakes for the integration client tests."""

from unittest.mock import Mock


def fake_response(status_code=200, json_data=None, headers=None, reason="", raise_on_json=False):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.reason = reason
    response.headers = headers or {}
    response.text = "" if json_data is None else str(json_data)
    if raise_on_json:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = json_data
    return response
