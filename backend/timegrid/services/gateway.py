from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from timegrid.core.config import Settings, get_settings
from timegrid.core.exceptions import CatalogLoadError, ConfigurationError, PersistenceError
from timegrid.schemas.catalog import CatalogBundle, SchoolClass, SubClass, Subject, Teacher, WeeklySlot
from timegrid.schemas.timetable import AssignedSlot, BulkUpdatePayload, BulkUpdateResponse

logger = logging.getLogger(__name__)

# entity name -> path, in the order CatalogBundle fields are filled
CATALOG_PATHS = {
    "classes": "/classes",
    "subClasses": "/classes/sub-classes",
    "subjects": "/subjects",
    "periods": "/periods",
    "teachers": "/users/teachers",
}
TIMETABLE_PATH = "/timetables"
BULK_UPDATE_PATH = "/timetables/bulk-update"


def _parse_items(entity: str, model: type[BaseModel], items: list[Any]) -> list:
    try:
        return [model.model_validate(item) for item in items]
    except ValidationError as exc:
        raise CatalogLoadError(entity, f"Invalid {entity} data: {exc.error_count()} error(s)") from exc


def _error_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or None
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or response.reason_phrase or None
    return response.reason_phrase or None


class TimetableGateway:
    """Async client for the timetable backend and the catalog endpoints."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        if client is None:
            base_url = (self._settings.api_base_url or "").strip()
            if not base_url:
                raise ConfigurationError("api_base_url must be set to reach the timetable backend")
            client = httpx.AsyncClient(
                base_url=base_url,
                timeout=self._settings.request_timeout_seconds,
            )
            self._owns_client = True
        else:
            self._owns_client = False
        self._client = client
        self._optional_catalogs = set(self._settings.optional_catalogs)

    async def __aenter__(self) -> TimetableGateway:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._settings.api_token:
            headers["Authorization"] = f"Bearer {self._settings.api_token}"
        return headers

    async def _fetch_list(self, entity: str) -> list[Any]:
        path = CATALOG_PATHS[entity]
        try:
            response = await self._client.get(path, headers=self._headers())
        except httpx.HTTPError as exc:
            raise CatalogLoadError(entity, f"Network error fetching {entity}: {exc}") from exc

        if response.status_code == 404 and entity in self._optional_catalogs:
            logger.warning("%s endpoint not found (404). Using empty list.", path)
            return []
        if response.is_error:
            message = _error_message(response) or f"Failed to fetch {entity} ({response.status_code})"
            raise CatalogLoadError(entity, message, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise CatalogLoadError(entity, f"Invalid JSON fetching {entity}") from exc
        data = body.get("data") if isinstance(body, dict) else None
        return data if isinstance(data, list) else []

    async def fetch_catalogs(self) -> CatalogBundle:
        entities = list(CATALOG_PATHS)
        results = await asyncio.gather(
            *(self._fetch_list(entity) for entity in entities),
            return_exceptions=True,
        )
        raw: dict[str, list[Any]] = {}
        for entity, result in zip(entities, results):
            if isinstance(result, BaseException):
                raise result
            raw[entity] = result

        bundle = CatalogBundle(
            classes=_parse_items("classes", SchoolClass, raw["classes"]),
            sub_classes=_parse_items("subClasses", SubClass, raw["subClasses"]),
            subjects=_parse_items("subjects", Subject, raw["subjects"]),
            teachers=_parse_items("teachers", Teacher, raw["teachers"]),
            periods=_parse_items("periods", WeeklySlot, raw["periods"]),
        )
        logger.debug(
            "Fetched catalogs: %d classes, %d subclasses, %d subjects, %d teachers, %d weekly slots",
            len(bundle.classes),
            len(bundle.sub_classes),
            len(bundle.subjects),
            len(bundle.teachers),
            len(bundle.periods),
        )
        return bundle

    async def fetch_assigned_slots(self, sub_class_id: str) -> list[AssignedSlot]:
        try:
            response = await self._client.get(
                TIMETABLE_PATH,
                params={"subClassId": sub_class_id},
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            raise PersistenceError(f"Network error fetching timetable for {sub_class_id}: {exc}") from exc

        if response.is_error:
            message = _error_message(response) or f"Failed to fetch timetable for {sub_class_id}"
            raise PersistenceError(message, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise PersistenceError(f"Invalid JSON in timetable for {sub_class_id}") from exc
        data = body.get("data") if isinstance(body, dict) else None
        slots = data.get("slots") if isinstance(data, dict) else None
        assigned: list[AssignedSlot] = []
        for item in slots or []:
            try:
                assigned.append(AssignedSlot.model_validate(item))
            except ValidationError:
                logger.warning("Dropping malformed timetable row for subclass %s: %r", sub_class_id, item)
        return assigned

    async def bulk_update(self, payload: BulkUpdatePayload) -> BulkUpdateResponse:
        headers = {**self._headers(), "Content-Type": "application/json"}
        try:
            response = await self._client.post(BULK_UPDATE_PATH, json=payload.to_wire(), headers=headers)
        except httpx.HTTPError as exc:
            raise PersistenceError(f"Network error saving timetable for {payload.sub_class_id}: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise PersistenceError(
                f"Failed to save timetable ({response.status_code})",
                status_code=response.status_code if response.is_error else 502,
            )
        try:
            return BulkUpdateResponse.from_body(body, ok=not response.is_error)
        except ValidationError as exc:
            raise PersistenceError(
                f"Unexpected save response ({response.status_code}): {exc.error_count()} invalid field(s)",
                status_code=502,
            ) from exc
