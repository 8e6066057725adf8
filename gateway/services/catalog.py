"""Общий каталог инструментов всех MCP серверов сессии"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class CatalogEntry:
    provider: str
    descriptor: Dict[str, Any]

    @property
    def name(self) -> str:
        return self.descriptor.get("name", "")


class CatalogAggregator:
    """
    Каталог пересобирается целиком (rebuild), инкрементальных правок нет.

    Если один и тот же инструмент объявлен несколькими серверами,
    resolve() возвращает последний зарегистрированный.
    """

    def __init__(self):
        self._entries: List[CatalogEntry] = []
        self._by_name: Dict[str, CatalogEntry] = {}

    def rebuild(self, links: Iterable[Any]) -> None:
        """Собирает каталог из инструментов всех готовых (READY) links."""
        entries = []
        by_name: Dict[str, CatalogEntry] = {}
        for link in links:
            if not link.is_ready:
                continue
            for tool in link.tools:
                entry = CatalogEntry(provider=link.name, descriptor=tool)
                previous = by_name.get(entry.name)
                if previous is not None and previous.provider != entry.provider:
                    logger.warning(
                        f"Tool '{entry.name}' from {previous.provider} is shadowed by {entry.provider}"
                    )
                entries.append(entry)
                by_name[entry.name] = entry

        self._entries = entries
        self._by_name = by_name

    def resolve(self, tool_name: str) -> Optional[CatalogEntry]:
        return self._by_name.get(tool_name)

    def tools(self) -> List[Dict[str, Any]]:
        """Описания инструментов без служебной привязки к серверу."""
        return [entry.descriptor for entry in self._entries]

    def provider_names(self) -> List[str]:
        seen = []
        for entry in self._entries:
            if entry.provider not in seen:
                seen.append(entry.provider)
        return seen

    def __len__(self) -> int:
        return len(self._entries)
