"""Explicit registry of the types that can be read back from storage."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar, overload

from pydantic import BaseModel

from .exceptions import UnknownEventTypeError

M = TypeVar("M", bound=type[BaseModel])

Decoder = Callable[[str], Any]


def make_discriminator(name: str, version: int) -> str:
    """Build the stored discriminator for a type name and schema version.

    Example:
        >>> make_discriminator("MoneyDeposited", 2)
        'MoneyDeposited.v2'
    """
    return f"{name}.v{version}"


@dataclass(frozen=True)
class RegisteredType:
    """A single entry of the type registry."""

    name: str
    version: int
    decoder: Decoder
    model: type[BaseModel] | None = None

    @property
    def discriminator(self) -> str:
        return make_discriminator(self.name, self.version)


class TypeRegistry:
    """Registry mapping stored discriminators to decode functions.

    Each concrete change event type and each aggregate type that is
    snapshotted must be registered. Registration assigns the type a
    discriminator of the form ``{name}.v{version}`` that is written next to
    every record of that type, and a decoder that turns the stored JSON back
    into a value.

    Older schema versions can stay readable by registering a bare decoder for
    their discriminator, typically one that upcasts the old payload into the
    current model.

    Examples:
        >>> registry = TypeRegistry()
        >>> registry.register(MoneyDeposited)
        >>> registry.discriminator_for(MoneyDeposited)
        'MoneyDeposited.v1'

        As a class decorator, with an explicit version:

        >>> @registry.register(version=2)
        ... class AccountOpened(ChangeEvent):
        ...     owner: str

        Keep v1 documents readable:

        >>> registry.register_decoder("AccountOpened", 1, upcast_account_opened_v1)
    """

    def __init__(self) -> None:
        self._by_discriminator: dict[str, RegisteredType] = {}
        self._by_model: dict[type[BaseModel], RegisteredType] = {}

    @overload
    def register(
        self,
        model: M,
        *,
        name: str | None = ...,
        version: int = ...,
        decoder: Decoder | None = ...,
    ) -> M: ...

    @overload
    def register(
        self,
        model: None = ...,
        *,
        name: str | None = ...,
        version: int = ...,
        decoder: Decoder | None = ...,
    ) -> Callable[[M], M]: ...

    def register(
        self,
        model: M | None = None,
        *,
        name: str | None = None,
        version: int = 1,
        decoder: Decoder | None = None,
    ) -> M | Callable[[M], M]:
        """Register a model type as the current schema for its name.

        Args:
            model: The pydantic model to register. When omitted, a class
                decorator is returned.
            name: Stored type name, defaults to the class name.
            version: Schema version of the model, defaults to 1.
            decoder: Custom decoder, defaults to ``model.model_validate_json``.

        Returns:
            The registered model, or a decorator registering it.

        Raises:
            ValueError: If the discriminator is already taken by another type.
        """

        def decorate(cls: M) -> M:
            entry = RegisteredType(
                name=name or cls.__name__,
                version=version,
                decoder=decoder or cls.model_validate_json,
                model=cls,
            )
            self._add(entry)
            self._by_model[cls] = entry
            return cls

        if model is None:
            return decorate
        return decorate(model)

    def register_decoder(self, name: str, version: int, decoder: Decoder) -> None:
        """Register a decoder for a discriminator that is only ever read.

        Args:
            name: Stored type name.
            version: The legacy schema version.
            decoder: Function turning the stored JSON into a current value.

        Raises:
            ValueError: If the discriminator already has a decoder or a model.
        """
        self._add(RegisteredType(name=name, version=version, decoder=decoder))

    def _add(self, entry: RegisteredType) -> None:
        if entry.version < 1:
            raise ValueError(f"Schema version must be positive, got {entry.version}")
        existing = self._by_discriminator.get(entry.discriminator)
        # Only re-registering the same model is idempotent, decoders never are
        if existing is not None and (existing.model is None or existing.model is not entry.model):
            raise ValueError(f"Discriminator '{entry.discriminator}' is already registered")
        self._by_discriminator[entry.discriminator] = entry

    def discriminator_for(self, model: type[BaseModel]) -> str:
        """Get the discriminator written for values of a model type.

        Raises:
            UnknownEventTypeError: If the type was never registered.
        """
        try:
            return self._by_model[model].discriminator
        except KeyError:
            raise UnknownEventTypeError(
                f"Type {model.__qualname__} is not registered"
            ) from None

    def is_registered(self, discriminator: str) -> bool:
        return discriminator in self._by_discriminator

    def decode(self, discriminator: str, data: str) -> Any:
        """Decode stored JSON using the decoder registered for its discriminator.

        Raises:
            UnknownEventTypeError: If no decoder is registered.
        """
        try:
            entry = self._by_discriminator[discriminator]
        except KeyError:
            raise UnknownEventTypeError(
                f"No decoder registered for discriminator '{discriminator}'"
            ) from None
        return entry.decoder(data)
