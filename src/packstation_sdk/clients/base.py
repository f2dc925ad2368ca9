from __future__ import annotations

from dataclasses import dataclass

from ..http_client import HttpClient, JsonPayload


@dataclass
class BaseClient:
    http: HttpClient
    access_token: str | None = None
    station_id: str | None = None

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.station_id:
            headers["X-Station-ID"] = self.station_id
        return headers

    def _request(self, method: str, path: str, **kwargs) -> JsonPayload:
        headers = kwargs.pop("headers", {})
        merged = {**self._auth_headers(), **headers}
        return self.http.request(method, path, headers=merged, **kwargs)


def expect_object(payload: JsonPayload, what: str) -> dict:
    if not isinstance(payload, dict):
        raise ValueError(f"Expected {what} response to be a JSON object")
    return payload
