import inspect
from abc import ABC, abstractmethod
from collections.abc import Callable
from functools import singledispatch
from typing import Any, TypeVar

from .domain.exceptions import UnhandledEventError

T = TypeVar("T")


class DefaultHandler(ABC):
    """Base handler for unregistered message types."""

    __slots__ = ("base_type", "operation_name")

    def __init__(self, base_type: type, operation_name: str):
        """Initialize the default handler.

        Args:
            base_type: The base type for messages (e.g., ChangeEvent).
            operation_name: Name of the operation for error
                messages.
        """
        self.base_type = base_type
        self.operation_name = operation_name

    @abstractmethod
    def __call__(self, message: Any, instance: Any) -> Any:
        """Handle an unregistered message type.

        Args:
            message: The message to handle.
            instance: The instance handling the message.

        Returns:
            The result of handling the message.
        """
        ...


class RaiseHandler(DefaultHandler):
    """Raise UnhandledEventError for unregistered message types."""

    __slots__ = ()

    def __call__(self, message: Any, instance: Any) -> Any:
        raise UnhandledEventError(
            f"No {self.operation_name} registered on {type(instance).__name__} for "
            f"{self.base_type.__name__} type {type(message).__name__}"
        )


def _extract_handler_type(func: Callable[..., Any], param_index: int = 1) -> type:
    """Extract the type annotation from a handler method.

    Args:
        func: The handler method to inspect.
        param_index: Index of the parameter to extract
            (0=self, 1=first arg, etc.)

    Returns:
        The type to route on (e.g., MoneyDeposited).

    Raises:
        ValueError: If the parameter lacks a type annotation.
    """
    func_name = getattr(func, "__name__", repr(func))
    params = list(inspect.signature(func).parameters.values())

    if len(params) <= param_index:
        raise ValueError(f"Handler {func_name} must have at least {param_index + 1} parameters")

    param = params[param_index]
    if param.annotation is inspect.Parameter.empty:
        raise ValueError(
            f"Handler {func_name} parameter '{param.name}' must have a type annotation"
        )
    if not isinstance(param.annotation, type):
        raise ValueError(
            f"Handler {func_name} parameter '{param.name}' must be annotated with a class, "
            f"got {param.annotation!r}"
        )
    return param.annotation


class MessageRouter:
    """Generic router for dispatching messages to type-specific handlers.

    This class uses singledispatch to route messages to registered handler
    methods based on their type annotations.
    """

    __slots__ = ("_dispatch",)

    def __init__(self, default_handler: DefaultHandler):
        """Initialize the message router.

        Args:
            default_handler: Handler for unregistered message types.
        """

        @singledispatch
        def dispatch(message: object, instance: object) -> object:
            return default_handler(message, instance)

        self._dispatch = dispatch

    def register(self, message_type: type, handler: Callable[[Any, Any], object]) -> None:
        """Register a handler for a specific message type.

        Args:
            message_type: The message class this handler processes.
            handler: The method to call when handling this message type.
        """

        # singledispatch dispatches on the first argument, handlers take self first
        def swapped(msg: object, inst: object, h: Any = handler) -> object:
            return h(inst, msg)

        self._dispatch.register(message_type)(swapped)

    def route(self, instance: Any, message: Any) -> object:
        """Route a message to its registered handler.

        Args:
            instance: The instance to call the handler on (self).
            message: The message to route.

        Returns:
            The result of the handler method.
        """
        return self._dispatch(message, instance)


class HandlerDecorator:
    """Marks methods as handlers for the type of their first argument."""

    def __init__(self, marker_attr: str, type_attr: str):
        """Initialize the decorator.

        Args:
            marker_attr: Attribute name to mark decorated methods
                (e.g., '_is_event_applier').
            type_attr: Attribute name to store the message type
                (e.g., '_applies_event_type').
        """
        self.marker_attr = marker_attr
        self.type_attr = type_attr

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        message_type = _extract_handler_type(func, param_index=1)
        setattr(func, self.type_attr, message_type)
        setattr(func, self.marker_attr, True)
        return func


applies_event = HandlerDecorator("_is_event_applier", "_applies_event_type")

applies_event.__doc__ = """Decorator marking a method as a state transition.

The change event type is automatically extracted from the method's type
annotation. A transition must only update the aggregate's own state, it is
used both when replaying history and when recording new changes.

Example:
    >>> class BankAccount(EventSourcedAggregate):
    ...     @applies_event
    ...     def when_opened(self, event: AccountOpened) -> None:
    ...         self.owner = event.owner
"""


def setup_routing(
    cls: type,
    marker_attr: str,
    type_attr: str,
    default_handler: DefaultHandler,
) -> MessageRouter:
    """Set up message routing for a class.

    Scans the class hierarchy for methods decorated with the specified marker
    and registers them with a MessageRouter. Subclass methods take precedence
    over inherited ones for the same message type.

    Args:
        cls: The class to set up routing for.
        marker_attr: Attribute name marking decorated methods.
        type_attr: Attribute name storing the message type.
        default_handler: Handler for unregistered message types.

    Returns:
        A configured MessageRouter.
    """
    router = MessageRouter(default_handler)

    for klass in reversed(cls.__mro__):
        for value in klass.__dict__.values():
            if getattr(value, marker_attr, False):
                router.register(getattr(value, type_attr), value)

    return router


def setup_event_applying(cls: type) -> MessageRouter:
    """Set up state transitions for an aggregate class.

    Args:
        cls: The aggregate class to set up routing for.

    Returns:
        A configured MessageRouter for event appliers.
    """
    # Import here to avoid circular dependency
    from .domain.event import ChangeEvent

    return setup_routing(
        cls,
        marker_attr="_is_event_applier",
        type_attr="_applies_event_type",
        default_handler=RaiseHandler(ChangeEvent, "state transition"),
    )
