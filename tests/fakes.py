import requests
from requests.structures import CaseInsensitiveDict


def make_response(status=200, body=b"", headers=None, url=""):
    """A requests.Response as the upstream session would return it."""
    resp = requests.Response()
    resp.status_code = status
    resp._content = body
    resp.headers = CaseInsensitiveDict(headers or {})
    resp.url = url
    return resp


class FakeUpstreamSession:
    """Stands in for requests.Session; replays canned responses in order."""

    def __init__(self, *responses, error=None):
        self.responses = list(responses)
        self.error = error
        self.calls = []
        self.closed = False

    def request(self, method, url, headers=None, data=None, allow_redirects=True, timeout=None):
        self.calls.append({"method": method, "url": url, "headers": headers, "data": data})
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    def close(self):
        self.closed = True


class FakeExtractionResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeExtractionSession:
    """
    Stands in for the extraction service. `replies` maps item type to a
    payload, a FakeExtractionResponse, or an exception to raise.
    """

    def __init__(self, **replies):
        self.replies = replies
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append(json)
        reply = self.replies[json["type"]]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, FakeExtractionResponse):
            return reply
        return FakeExtractionResponse(reply)
