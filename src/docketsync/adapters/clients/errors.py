from __future__ import annotations


class DocketwiseClientError(Exception):
    """Base error for Docketwise client failures."""


class DocketwiseAPIError(DocketwiseClientError):
    """Raised when the Docketwise API answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "", *, url: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.url = url
        location = f" for {url}" if url else ""
        super().__init__(f"Docketwise API error ({status_code}){location}: {body}")

    @property
    def rate_limited(self) -> bool:
        return self.status_code in (419, 429)
