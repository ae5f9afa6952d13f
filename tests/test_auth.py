from backend.auth import TokenAuth


class TestTokenAuth:

    def test_headers_with_token(self):
        assert TokenAuth("abc").get_headers() == {
            "Content-Type": "application/json",
            "Authorization": "Bearer abc",
        }

    def test_headers_without_token(self):
        assert "Authorization" not in TokenAuth().get_headers()

    def test_empty_token_is_no_token(self):
        assert not TokenAuth("").has_token()

    def test_ws_url_appends_token(self):
        assert TokenAuth("abc").ws_url("ws://localhost:3001/api/") == "ws://localhost:3001/api/?token=abc"

    def test_ws_url_keeps_query_and_replaces_stale_token(self):
        url = TokenAuth("new").ws_url("wss://host/api/?lang=fr&token=old")
        assert url == "wss://host/api/?lang=fr&token=new"

    def test_invalidate(self):
        auth = TokenAuth("abc")
        auth.invalidate()
        assert auth.token is None
        assert auth.ws_url("ws://h/api/") == "ws://h/api/"
