from typing import Optional


class SessionApiError(Exception):
    """A session handler call failed: rejected by the server or never answered."""

    def __init__(self, code: str, detail: str = '', status: Optional[int] = None):
        super().__init__(f'{code}: {detail}' if detail else code)
        self.code = code
        self.detail = detail
        self.status = status
