class SessionError(Exception):
    """A handler request that cannot be honoured as sent.

    `code` is machine-checkable, `detail` is shown to the user as-is.
    """

    def __init__(self, code: str, detail: str, status: int = 400):
        super().__init__(detail)
        self.code = code
        self.detail = detail
        self.status = status

    def to_dict(self):
        return {'error': self.code, 'detail': self.detail}
