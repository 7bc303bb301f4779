"""
Abstract base class for importers
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from importer.config import ImportConfig, ImportConfigBuilder
from importer.engine import ImportEngine
import logging

logger = logging.getLogger(__name__)


class Importer(ABC):
    """
    Abstract base class for all importers.

    Responsibilities:
    - Declare the import once, in configure()
    - Act as the context every callback and context method receives
    - Build a fresh engine per run, so runs never share state

    Example:
        class PersonImporter(Importer):
            def configure(self, builder):
                builder.transform(from_=LegacyPerson, to=Person)
                builder.map_attribute("name", "fullname")
                builder.map_attribute("age")
                builder.context_method("age", PersonImporter.age)

            def age(self, record):
                return 2024 - record.birth_year

        result = await PersonImporter().run(batch_size=500)
    """

    def __init__(
        self,
        source_sessions: Optional[async_sessionmaker] = None,
        destination_sessions: Optional[async_sessionmaker] = None
    ):
        self.source_sessions = source_sessions
        self.destination_sessions = destination_sessions
        self.engine: Optional[ImportEngine] = None

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def configure(self, builder: ImportConfigBuilder) -> None:
        """Declare models, column mappings, options and callbacks"""
        pass

    def build_config(self, **overrides: Any) -> ImportConfig:
        """Configuration for one run; ``overrides`` replace scalar options"""
        builder = ImportConfigBuilder()
        self.configure(builder)
        if overrides:
            builder.options(**overrides)
        return builder.build()

    async def run(self, **overrides: Any) -> Dict[str, Any]:
        """
        Run the import once.

        Returns:
            The engine's run summary
        """
        config = self.build_config(**overrides)
        self.engine = ImportEngine(
            config,
            context=self,
            source_sessions=self.source_sessions,
            destination_sessions=self.destination_sessions
        )

        logger.info(f"Running {self.name}")
        return await self.engine.run()
