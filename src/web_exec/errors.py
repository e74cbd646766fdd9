from __future__ import annotations

"""errors.py — исключения, которые реально пролетают наружу.

Сетевые/HTTP-ошибки сюда не попадают: движки возвращают ExecutionResult с error-строкой.
Наружу летят только ошибки конфигурации и явные отказы исполнителя.
"""


class MissingCredentialsError(ValueError):
    """Provider credentials are not configured. Never retried, never escalated."""

    def __init__(self, what: str, missing: tuple[str, ...] = ()) -> None:
        self.what = what
        self.missing = tuple(missing)
        msg = f"{what}: missing credentials"
        if self.missing:
            msg += " (" + ", ".join(self.missing) + ")"
        super().__init__(msg)


class ExecutionError(RuntimeError):
    """Executor failure; the message is what the escalation policy inspects."""


class UnknownTierError(ValueError):
    pass
