"""Shared test helpers."""

API_KEY = "test-api-key"
CLIENT_KEY = "test-client-key"


class Clock:
    """Stand-in for time.time with a settable value."""

    def __init__(self, t: float):
        self.t = t

    def __call__(self) -> float:
        return self.t


def writer(user_key: str = "user-1") -> dict[str, str]:
    return {"x-user-key": user_key, "x-api-key": API_KEY}


def reader(user_key: str = "user-1", client_key: str | None = None) -> dict[str, str]:
    headers = {"x-user-key": user_key}
    if client_key:
        headers["x-client-key"] = client_key
    return headers
