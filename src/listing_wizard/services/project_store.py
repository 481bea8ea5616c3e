"""
Project Store - persistence of listing projects keyed by id
"""
import logging
import threading
from typing import Any, Callable, Dict, Iterator, Optional

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import NotFound, ValidationError
from ..schemas import (
    IMMUTABLE_PROJECT_FIELDS,
    Project,
    ProjectStatus,
    resolve_project_field,
    utcnow,
)
from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)

PROJECT_KEY_PREFIX = "project:"


def project_key(project_id: str) -> str:
    return f"{PROJECT_KEY_PREFIX}{project_id}"


class ProjectStore:
    """
    Durable key-value persistence of Project records

    Updates are shallow merges per top-level field. List fields (images,
    highlights, seo_keywords) are replaced wholesale, so callers must
    read-modify-write the full list. Every write is validated before it
    reaches storage and is serialized per store with a lock.
    """

    def __init__(self, kv_store: KeyValueStore):
        self.kv_store = kv_store
        self._lock = threading.RLock()

    def create(self, owner_id: str, **fields) -> Project:
        """
        Create a new DRAFT project

        Args:
            owner_id: User owning the project
            **fields: Initial field values (snake_case or camelCase)

        Returns:
            The stored Project
        """
        initial = self._normalize_fields(fields)
        initial.pop("status", None)
        initial.pop("owner_id", None)
        try:
            project = Project(owner_id=owner_id, status=ProjectStatus.DRAFT, **initial)
        except PydanticValidationError as e:
            raise self._to_validation_error(e) from e

        with self._lock:
            self.kv_store.set(project_key(project.id), project.to_record())
        logger.info(f"Created project {project.id} for user {owner_id}")
        return project

    def get(self, project_id: str) -> Project:
        """
        Load a project

        Raises:
            NotFound: If no project has this id
        """
        record = self.kv_store.get(project_key(project_id))
        if record is None:
            raise NotFound(project_key(project_id))
        return Project.from_record(record)

    def upsert(
        self,
        project_id: str,
        partial_fields: Dict[str, Any],
        check: Optional[Callable[[Project], None]] = None
    ) -> Project:
        """
        Merge partial_fields into the stored project (creating it if absent)

        Args:
            project_id: Project id
            partial_fields: Fields to overwrite; unspecified fields are untouched
            check: Optional callable run on the merged project before it is written;
                raising from it aborts the write

        Returns:
            The full updated Project

        Raises:
            ValidationError: Unknown field, immutable field change, or invalid value
        """
        updates = self._normalize_fields(partial_fields)

        with self._lock:
            record = self.kv_store.get(project_key(project_id))

            if record is None:
                if not updates.get("owner_id"):
                    raise ValidationError("owner_id is required to create a project", field="owner_id")
                merged = {"id": project_id, **updates}
            else:
                current = Project.from_record(record)
                for name in IMMUTABLE_PROJECT_FIELDS:
                    if name in updates and updates[name] != getattr(current, name):
                        raise ValidationError(f"{name} cannot be changed", field=name)
                merged = {**current.model_dump(), **updates}

            merged["updated_at"] = utcnow()
            try:
                project = Project.model_validate(merged)
            except PydanticValidationError as e:
                raise self._to_validation_error(e) from e

            if check is not None:
                check(project)

            self.kv_store.set(project_key(project_id), project.to_record())

        logger.debug(f"Updated project {project_id}: {sorted(updates)}")
        return project

    def delete(self, project_id: str) -> None:
        """Remove a project; deleting a missing project is not an error"""
        with self._lock:
            removed = self.kv_store.delete(project_key(project_id))
        if removed:
            logger.info(f"Deleted project {project_id}")

    def list(self, owner_id: str) -> Iterator[Project]:
        """
        Projects owned by a user, most recently created first

        Yields:
            Project records
        """
        projects = []
        for key in self.kv_store.scan(PROJECT_KEY_PREFIX):
            record = self.kv_store.get(key)
            if record is None or record.get("ownerId") != owner_id:
                continue
            projects.append(Project.from_record(record))

        projects.sort(key=lambda p: p.created_at, reverse=True)
        yield from projects

    def latest_draft(self, owner_id: str) -> Optional[Project]:
        """Newest DRAFT project of a user, if any"""
        for project in self.list(owner_id):
            if project.status == ProjectStatus.DRAFT:
                return project
        return None

    @staticmethod
    def _normalize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
        """Map incoming keys to Project field names, rejecting unknown keys"""
        normalized = {}
        for key, value in (fields or {}).items():
            name = resolve_project_field(key)
            if name is None:
                raise ValidationError(f"Unknown project field: {key}", field=key)
            normalized[name] = value
        return normalized

    @staticmethod
    def _to_validation_error(error: PydanticValidationError) -> ValidationError:
        first = error.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        return ValidationError(f"Invalid value for {field}: {first.get('msg')}", field=field)
