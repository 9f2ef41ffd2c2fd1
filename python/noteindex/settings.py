"""
Settings - The persisted settings blob that carries the vector store.

Vectors, index groups and the active embedding model live together in a
single JSON document, loaded and saved as a whole.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .embedders import OPENAI_EMBEDDING_3_SMALL, OPENAI_PROVIDER
from .models import DEFAULT_INDEX_GROUPS, IndexGroup, StoredVector
from .vector_store import DEFAULT_DECIMALS, VectorStore


logger = logging.getLogger(__name__)

# Model assumed for vectors saved before the model name was recorded
UNLABELLED_EMBEDDING_MODEL = f"{OPENAI_PROVIDER}:{OPENAI_EMBEDDING_3_SMALL}"


def format_model_value(provider_id: str, model_name: str) -> str:
    """Model setting value in "provider:model" form."""
    return f"{provider_id}:{model_name}"


def parse_model_value(value: str) -> Tuple[str, str]:
    """
    Split a "provider:model" setting value.

    A bare model name (old format) belongs to the openai provider.
    """
    provider_id, sep, model_name = value.partition(":")
    if not sep:
        return OPENAI_PROVIDER, value
    return provider_id, model_name


@dataclass
class PluginSettings:
    """Persisted settings relevant to indexing."""
    vectors: List[StoredVector] = field(default_factory=list)
    index_groups: List[IndexGroup] = field(
        default_factory=lambda: [IndexGroup(g.name, g.source_scope, g.prompt) for g in DEFAULT_INDEX_GROUPS]
    )
    indexed_group: int = 0
    embeddings_model_version: Optional[str] = None
    embeddings_model_provider_id: Optional[str] = None
    embeddings_enabled: bool = False
    quantization_decimals: int = DEFAULT_DECIMALS

    @property
    def model_name(self) -> str:
        """Embedding model name without the provider prefix."""
        return parse_model_value(self.embeddings_model_version or UNLABELLED_EMBEDDING_MODEL)[1]

    @property
    def provider_id(self) -> str:
        if self.embeddings_model_version and ":" in self.embeddings_model_version:
            return parse_model_value(self.embeddings_model_version)[0]
        return self.embeddings_model_provider_id or OPENAI_PROVIDER

    def active_group(self) -> Optional[IndexGroup]:
        """The group selected for indexing, or None if the index is out of range."""
        if 0 <= self.indexed_group < len(self.index_groups):
            return self.index_groups[self.indexed_group]
        return None

    def vector_store(self) -> VectorStore:
        """Build a VectorStore over the persisted vectors."""
        return VectorStore(self.model_name, self.quantization_decimals, self.vectors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vectors": [v.to_dict() for v in self.vectors],
            "noteGroups": [g.to_dict() for g in self.index_groups],
            "indexedNoteGroup": self.indexed_group,
            "embeddingsModelVersion": self.embeddings_model_version,
            "embeddingsModelProviderId": self.embeddings_model_provider_id,
            "embeddingsEnabled": self.embeddings_enabled,
            "quantizationDecimals": self.quantization_decimals,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PluginSettings":
        settings = cls()
        settings.vectors = [StoredVector.from_dict(v) for v in data.get("vectors") or []]
        if data.get("noteGroups"):
            settings.index_groups = [IndexGroup.from_dict(g) for g in data["noteGroups"]]
        settings.indexed_group = int(data.get("indexedNoteGroup", 0))
        settings.embeddings_model_version = data.get("embeddingsModelVersion")
        settings.embeddings_model_provider_id = data.get("embeddingsModelProviderId")
        settings.embeddings_enabled = bool(data.get("embeddingsEnabled", False))
        settings.quantization_decimals = int(data.get("quantizationDecimals", DEFAULT_DECIMALS))
        return settings


def migrate(settings: PluginSettings) -> PluginSettings:
    """
    Bring settings written by older versions up to date.

    - Vectors without a recorded model belong to the unlabelled model,
      and embeddings were evidently enabled.
    - A bare model name becomes "provider:model".
    """
    if not settings.embeddings_model_version and settings.vectors:
        settings.embeddings_model_version = UNLABELLED_EMBEDDING_MODEL
        settings.embeddings_enabled = True

    version = settings.embeddings_model_version
    if version and ":" not in version:
        provider_id = settings.embeddings_model_provider_id or OPENAI_PROVIDER
        migrated = format_model_value(provider_id, version)
        logger.info(f'Migrating embeddingsModelVersion from "{version}" to "{migrated}"')
        settings.embeddings_model_version = migrated
        settings.embeddings_model_provider_id = provider_id

    # Records saved before the model was stored per vector
    for vector in settings.vectors:
        if not vector.model_name:
            vector.model_name = settings.model_name

    return settings


class SettingsStore:
    """
    Load/save hooks for the settings file.

    A missing or empty file is a first run, not an error.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> PluginSettings:
        if not self.path.exists() or self.path.stat().st_size == 0:
            logger.info(f"No settings at {self.path}, using defaults")
            return PluginSettings()

        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)

        settings = migrate(PluginSettings.from_dict(data or {}))
        logger.debug(f"Loaded settings with {len(settings.vectors)} vectors")
        return settings

    def save(self, settings: PluginSettings) -> None:
        """Write the whole blob atomically (temp file, then rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".settings-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(settings.to_dict(), f)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise
        logger.debug(f"Saved settings with {len(settings.vectors)} vectors")

    def save_store(self, settings: PluginSettings, store: VectorStore) -> None:
        """Copy the store's records into settings and save."""
        settings.vectors = store.records()
        self.save(settings)
