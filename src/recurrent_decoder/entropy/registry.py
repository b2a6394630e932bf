"""Name-to-class table for entropy sources.

The built-in sources add themselves with :func:`register_entropy_source`.
A name that is not in the table is resolved through the
``recurrent_decoder.entropy_sources`` entry-point group, so a separate
package can provide a source without changing this one.
"""

from __future__ import annotations

import importlib.metadata
import inspect
import logging
from typing import TYPE_CHECKING, ClassVar

from recurrent_decoder.exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Callable

    from recurrent_decoder.config import DecoderConfig
    from recurrent_decoder.entropy.base import EntropySource

logger = logging.getLogger("recurrent_decoder")

_ENTRY_POINT_GROUP = "recurrent_decoder.entropy_sources"


class EntropySourceRegistry:
    """Resolves ``DecoderConfig.entropy_source_type`` to a source class."""

    _sources: ClassVar[dict[str, type[EntropySource]]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[type[EntropySource]], type[EntropySource]]:
        """Return a class decorator that files the class under *name*."""

        def decorator(source_cls: type[EntropySource]) -> type[EntropySource]:
            cls._sources[name] = source_cls
            return source_cls

        return decorator

    @classmethod
    def get(cls, name: str) -> type[EntropySource]:
        """Return the source class called *name*.

        Registered classes win over entry points with the same name. A class
        found through an entry point is remembered for later lookups.

        Raises:
            ConfigurationError: If no source is called *name*, or its entry
                point fails to import.
        """
        source_cls = cls._sources.get(name)
        if source_cls is None:
            source_cls = cls._from_entry_point(name)
        if source_cls is None:
            known = ", ".join(sorted(cls._sources)) or "(none)"
            raise ConfigurationError(f"Unknown entropy source {name!r}, known sources: {known}")
        return source_cls

    @classmethod
    def build(cls, config: DecoderConfig) -> EntropySource:
        """Create the source named by ``config.entropy_source_type``.

        ``config.seed`` is handed to constructors that take a ``seed``
        argument.
        """
        source_cls = cls.get(config.entropy_source_type)
        if "seed" in inspect.signature(source_cls).parameters:
            return source_cls(seed=config.seed)  # type: ignore[call-arg]
        return source_cls()

    @classmethod
    def _from_entry_point(cls, name: str) -> type[EntropySource] | None:
        for entry_point in importlib.metadata.entry_points(group=_ENTRY_POINT_GROUP, name=name):
            try:
                source_cls = entry_point.load()
            except Exception as exc:
                raise ConfigurationError(
                    f"Cannot load entropy source {name!r} from {entry_point.value}: {exc}"
                ) from exc
            logger.debug("Entropy source %r loaded from %s", name, entry_point.value)
            cls._sources[name] = source_cls
            return source_cls
        return None


register_entropy_source = EntropySourceRegistry.register
