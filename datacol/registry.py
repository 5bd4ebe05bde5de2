"""Typed access to stacks and auth records in the state store."""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from .constants import AUTH_BUCKET, CURRENT_STACK_KEY, META_BUCKET, STACKS_BUCKET
from .exceptions import NotInitializedError, StackNotFoundError
from .models import Auth, Stack
from .store import Store

log = logger.bind(component="registry")


class StackRegistry:
    """CRUD over Stack records and the per-stack Auth records.

    The most recently written Auth is remembered as the current stack,
    used when no stack name is given explicitly.
    """

    def __init__(self, store: Store) -> None:
        self._store = store

    # Stacks

    def get_stack(self, name: str) -> Stack:
        raw = self._store.get(STACKS_BUCKET, name)
        if raw is None:
            raise StackNotFoundError(name)
        return Stack.from_dict(raw)

    def put_stack(self, stack: Stack) -> None:
        self._store.persist(STACKS_BUCKET, stack.name, stack)
        log.debug("Saved stack {name}", name=stack.name)

    def delete_stack(self, name: str) -> bool:
        return self._store.delete(STACKS_BUCKET, name)

    def list_stacks(self) -> list[Stack]:
        return [self.get_stack(name) for name in self._store.keys(STACKS_BUCKET)]

    # Auth

    def current_stack_name(self) -> str | None:
        return self._store.get(META_BUCKET, CURRENT_STACK_KEY)

    def get_auth(self, name: str | None = None) -> Auth:
        """Return the auth record for name, or for the current stack.

        Raises NotInitializedError when there is no such record.
        """
        name = name or self.current_stack_name()
        if name is None:
            raise NotInitializedError()
        raw = self._store.get(AUTH_BUCKET, name)
        if raw is None:
            raise NotInitializedError()
        return Auth.from_dict(raw)

    def set_auth(self, auth: Auth) -> None:
        self._store.persist(AUTH_BUCKET, auth.name, auth)
        self._store.persist(META_BUCKET, CURRENT_STACK_KEY, auth.name)
        log.debug("Saved auth for {name}", name=auth.name)

    def delete_auth(self, name: str) -> bool:
        removed = self._store.delete(AUTH_BUCKET, name)
        if self.current_stack_name() == name:
            self._store.delete(META_BUCKET, CURRENT_STACK_KEY)
        return removed


@dataclass
class Client:
    """The active session context. Holds at most one Stack; last set_stack wins."""

    version: str
    registry: StackRegistry = field(repr=False)
    stack_name: str = ""
    stack: Stack | None = None

    def set_stack(self, name: str) -> Stack:
        self.stack_name = name
        try:
            self.stack = self.registry.get_stack(name)
        except StackNotFoundError:
            self.stack = None
            raise NotInitializedError() from None
        return self.stack

    def require_stack(self) -> Stack:
        if self.stack is None:
            raise NotInitializedError()
        return self.stack
