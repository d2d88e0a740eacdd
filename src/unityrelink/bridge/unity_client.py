import json
import urllib.error
import urllib.parse
import urllib.request

from unityrelink.bridge.config import UNITY_BRIDGE_TIMEOUT, base_url


class UnityBridgeError(Exception):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class UnityClient:
    """HTTP client for the editor bridge running inside Unity."""

    def _request(self, path, params=None, timeout=None, method="GET"):
        url = base_url() + path
        if params:
            filtered = {k: _query_value(v) for k, v in params.items() if v is not None}
            if filtered:
                url += "?" + urllib.parse.urlencode(filtered)
        timeout = timeout or UNITY_BRIDGE_TIMEOUT
        req = urllib.request.Request(url, method=method)
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            try:
                err = json.loads(body)
                msg = err.get("error", body)
            except (json.JSONDecodeError, AttributeError):
                msg = body
            raise UnityBridgeError(msg, status_code=e.code) from None
        except urllib.error.URLError as e:
            raise UnityBridgeError(f"Cannot connect to Unity Editor: {e.reason}") from None

    def get_json(self, path, params=None, timeout=None):
        return json.loads(self._request(path, params, timeout))

    def post_json(self, path, params=None, timeout=None):
        return json.loads(self._request(path, params, timeout, method="POST"))

    def ping(self):
        return self.get_json("/api/ping")

    def refresh_asset(self, path):
        """Reimport one asset after it was rewritten on disk."""
        return self.post_json("/api/refresh", {"path": path})


def _query_value(value):
    if isinstance(value, bool):
        return "true" if value else "false"
    return value
