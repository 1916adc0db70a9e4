"""
Confirmation dialog interaction contract.

Toolkit-neutral: the host UI forwards key presses and backdrop clicks, and
provides a ``FocusHost`` so the dialog can capture and restore focus. Actions
are identified by ``DialogAction`` members, which the host maps onto its own
widgets.

Contract:
- open: remember the focused element, focus the cancel action
- close: give focus back to the remembered element
- Escape / backdrop click cancel, unless ``loading``
- Tab / Shift+Tab cycle between the two actions only
- ``show_error`` switches to acknowledge-only: cancel reads "Close" and the
  confirm action is withdrawn
"""

import enum
from typing import Any, Callable, Optional, Protocol


class DialogAction(str, enum.Enum):
    CANCEL = "cancel"
    CONFIRM = "confirm"


class FocusHost(Protocol):
    def focused(self) -> Any: ...

    def focus(self, target: Any) -> None: ...


class FocusTracker:
    """In-memory FocusHost for hosts without a native focus model."""

    def __init__(self, focused: Any = None) -> None:
        self.current = focused

    def focused(self) -> Any:
        return self.current

    def focus(self, target: Any) -> None:
        self.current = target


DEFAULT_TITLE = "Delete Post"
DEFAULT_DESCRIPTION = "Are you sure you want to delete this post? This action cannot be undone."


class ConfirmDialog:
    def __init__(
        self,
        on_confirm: Optional[Callable[[], Any]] = None,
        on_cancel: Optional[Callable[[], Any]] = None,
        focus_host: Optional[FocusHost] = None,
        title: str = DEFAULT_TITLE,
        description: str = DEFAULT_DESCRIPTION,
        confirm_text: str = "Delete",
        cancel_text: str = "Cancel",
    ) -> None:
        self.on_confirm = on_confirm
        self.on_cancel = on_cancel
        self.focus_host = focus_host if focus_host is not None else FocusTracker()
        self.title = title
        self.description = description
        self.confirm_text = confirm_text
        self.cancel_text = cancel_text

        self.is_open = False
        self.loading = False
        self.error_message: Optional[str] = None
        self._previous_focus: Any = None

    # -- rendering -----------------------------------------------------------

    @property
    def acknowledge_only(self) -> bool:
        return self.error_message is not None

    @property
    def message(self) -> str:
        return self.error_message if self.acknowledge_only else self.description

    @property
    def cancel_label(self) -> str:
        return "Close" if self.acknowledge_only else self.cancel_text

    @property
    def actions(self) -> tuple[DialogAction, ...]:
        if self.acknowledge_only:
            return (DialogAction.CANCEL,)
        return (DialogAction.CANCEL, DialogAction.CONFIRM)

    def is_enabled(self, action: DialogAction) -> bool:
        return self.is_open and not self.loading and action in self.actions

    # -- lifecycle -----------------------------------------------------------

    def open(self) -> None:
        if not self.is_open:
            self._previous_focus = self.focus_host.focused()
            self.is_open = True
        self.loading = False
        self.error_message = None
        self.focus_host.focus(DialogAction.CANCEL)

    def close(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        self.loading = False
        self.error_message = None
        previous, self._previous_focus = self._previous_focus, None
        if previous is not None:
            self.focus_host.focus(previous)

    def show_error(self, message: str) -> None:
        self.error_message = message
        self.loading = False
        if self.is_open:
            self.focus_host.focus(DialogAction.CANCEL)

    # -- interaction ---------------------------------------------------------

    def confirm(self) -> Any:
        """
        Invoke the confirm callback and return its result, which may be
        awaitable. Does nothing while loading or when the action is withdrawn.
        """
        if not self.is_enabled(DialogAction.CONFIRM) or self.on_confirm is None:
            return None
        return self.on_confirm()

    def cancel(self) -> Any:
        if not self.is_enabled(DialogAction.CANCEL):
            return None
        if self.on_cancel is None:
            self.close()
            return None
        return self.on_cancel()

    def click_backdrop(self) -> Any:
        return self.cancel()

    def handle_key(self, key: str, shift: bool = False) -> bool:
        """
        Handle a key press while open. Returns True when the key was consumed
        and the host should suppress its default behaviour.
        """
        if not self.is_open:
            return False
        if key == "Escape":
            if self.loading:
                return False
            self.cancel()
            return True
        if key == "Tab":
            self._cycle_focus(backwards=shift)
            return True
        return False

    def _cycle_focus(self, backwards: bool) -> None:
        actions = self.actions
        current = self.focus_host.focused()
        if current not in actions:
            self.focus_host.focus(actions[0])
            return
        step = -1 if backwards else 1
        self.focus_host.focus(actions[(actions.index(current) + step) % len(actions)])
