"""
Productboard REST integration.

Implements the record source and record sink over the v1 API (features,
notes, companies, custom field values) and the v2 entities API
(hierarchy entities). Every failure is reduced to a sanitized message;
raw response bodies only reach the server log and SinkResult.raw_error.
"""

from typing import Any, Optional
from urllib.parse import parse_qs, urlparse
import requests
import structlog

from config import settings
from models.configs import ENTITY_TYPES
from models.record import (
    CustomField,
    FieldValueResult,
    PageResult,
    Record,
    SinkResult,
)
from exceptions import PageFetchError, SourceUnavailableError
from integrations.error_sanitizer import sanitize_api_error, sanitize_exception
from services.field_value_service import get_batch_field_values

logger = structlog.get_logger(__name__)


# Custom field types listed for hierarchy entities
CUSTOM_FIELD_TYPES = ["number", "text", "dropdown", "date", "member", "multi_select"]

# Listing kinds served by the v1 API; entity types go to v2
V1_KINDS = ("features", "notes", "companies")

# Standard v2 entity fields (everything else is a custom field)
STANDARD_ENTITY_FIELDS = ("name", "description", "status", "owner", "timeframe")


class ProductboardClient:
    """
    Productboard API client bound to one bearer token.

    The token is never logged.
    """

    def __init__(
        self,
        api_token: str,
        base_url: Optional[str] = None,
        v2_base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.productboard_api_url).rstrip("/")
        self.v2_base_url = (v2_base_url or settings.productboard_v2_api_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout_seconds
        self.session = session or requests.Session()
        self._api_token = api_token

    # ===================
    # HTTP HELPERS
    # ===================

    def _headers(self, v2: bool = False) -> dict:
        headers = {
            "accept": "application/json",
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }
        if not v2:
            headers["X-Version"] = "1"
        return headers

    def _request(
        self,
        method: str,
        url: str,
        *,
        v2: bool = False,
        params: Optional[dict] = None,
        payload: Optional[dict] = None,
    ) -> requests.Response:
        return self.session.request(
            method,
            url,
            headers=self._headers(v2),
            params=params,
            json=payload,
            timeout=self.timeout,
        )

    def _sink_failure(self, response: requests.Response, context: str) -> SinkResult:
        raw = response.text
        return SinkResult(
            success=False,
            error=sanitize_api_error(response.status_code, raw, context),
            status_code=response.status_code,
            raw_error=raw,
        )

    def _sink_exception(self, error: Exception, context: str) -> SinkResult:
        return SinkResult(
            success=False,
            error=sanitize_exception(error, context),
            raw_error=str(error),
        )

    @staticmethod
    def _created_id(response: requests.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        data = body.get("data", body) if isinstance(body, dict) else {}
        return data.get("id") if isinstance(data, dict) else None

    # ===================
    # RECORD SOURCE
    # ===================

    def list_page(self, kind: str, cursor: Optional[str] = None) -> PageResult:
        """
        Fetch one page of a listing.

        Args:
            kind: "features", "notes", "companies" or a v2 entity type
            cursor: Value from the previous page's next_cursor

        Returns:
            PageResult with records and the next cursor (None on the last page)

        Raises:
            PageFetchError: If the request fails
        """
        context = f"list_{kind}"
        url, params, v2 = self._listing_request(kind, cursor)

        try:
            response = self._request("GET", url, v2=v2, params=params)
        except requests.exceptions.RequestException as e:
            raise PageFetchError(kind, sanitize_exception(e, context))

        if not response.ok:
            raise PageFetchError(
                kind,
                sanitize_api_error(response.status_code, response.text, context),
                status_code=response.status_code
            )

        body = response.json()
        items = [self._to_record(raw, v2) for raw in body.get("data") or []]
        next_cursor = self._next_cursor(kind, body)

        logger.debug(
            "productboard_page_fetched",
            kind=kind,
            count=len(items),
            has_next=bool(next_cursor)
        )

        return PageResult(items=items, next_cursor=next_cursor)

    def _listing_request(self, kind: str, cursor: Optional[str]) -> tuple[str, Optional[dict], bool]:
        """Resolve (url, params, is_v2) for a listing page."""
        if kind in ENTITY_TYPES:
            params = {"type": kind, "pageLimit": settings.entities_page_limit}
            if cursor:
                params["pageToken"] = cursor
            return f"{self.v2_base_url}/entities", params, True

        if kind not in V1_KINDS:
            raise ValueError(f"Unknown listing kind: {kind}")

        # Absolute "next" links already carry every query parameter
        if cursor and cursor.startswith("http"):
            return cursor, None, False

        if kind == "notes":
            params = {"pageLimit": settings.notes_page_limit}
        elif kind == "companies":
            params = {"pageLimit": settings.companies_page_limit}
        else:
            params = {}
        if cursor:
            params["pageCursor"] = cursor
        return f"{self.base_url}/{kind}", params, False

    @staticmethod
    def _next_cursor(kind: str, body: dict) -> Optional[str]:
        next_link = (body.get("links") or {}).get("next")

        if kind == "notes":
            return body.get("pageCursor") or None
        if kind in ENTITY_TYPES:
            if not next_link:
                return None
            tokens = parse_qs(urlparse(next_link).query).get("pageToken")
            return tokens[0] if tokens else None
        return next_link or None

    @staticmethod
    def _to_record(raw: dict, v2: bool) -> Record:
        if v2:
            fields = dict(raw.get("fields") or {})
            fields["type"] = raw.get("type")
        else:
            fields = {k: v for k, v in raw.items() if k != "id"}
        return Record(
            id=str(raw.get("id")),
            fields=fields,
            created_at=raw.get("createdAt"),
        )

    def _value_url(self, entity_id: str, field_id: str, scope: str) -> tuple[str, Optional[dict]]:
        if scope == "companies":
            return f"{self.base_url}/companies/{entity_id}/custom-fields/{field_id}/value", None
        return (
            f"{self.base_url}/hierarchy-entities/custom-fields-values/value",
            {"customField.id": field_id, "hierarchyEntity.id": entity_id},
        )

    def get_field_value(self, entity_id: str, field_id: str, scope: str = "features") -> FieldValueResult:
        """
        Read one custom field value.

        A 404 means the entity has no value for the field.

        Raises:
            PageFetchError: If the request fails for any other reason
        """
        context = "get_field_value"
        url, params = self._value_url(entity_id, field_id, scope)

        try:
            response = self._request("GET", url, params=params)
        except requests.exceptions.RequestException as e:
            raise PageFetchError(scope, sanitize_exception(e, context))

        if response.status_code == 404:
            return FieldValueResult(has_value=False, value=None)
        if not response.ok:
            raise PageFetchError(
                scope,
                sanitize_api_error(response.status_code, response.text, context),
                status_code=response.status_code
            )

        value = (response.json().get("data") or {}).get("value")
        return FieldValueResult(has_value=value is not None, value=value)

    def get_batch_field_values(
        self,
        entity_ids: list[str],
        field_id: str,
        scope: str = "features"
    ) -> dict[str, FieldValueResult]:
        """Read one field for many entities in parallel batches."""
        return get_batch_field_values(self, entity_ids, field_id, scope=scope)

    def list_custom_fields(self, scope: str) -> list[CustomField]:
        """
        List custom field definitions.

        Feature fields are listed one type at a time; a type whose request
        fails is skipped unless the token is rejected or every type fails.

        Args:
            scope: "features", "companies" or a v2 entity type

        Returns:
            Custom fields; for v2 entity types every configured field

        Raises:
            SourceUnavailableError: If the field definitions cannot be read
        """
        if scope in ENTITY_TYPES:
            return self._entity_fields(scope)
        if scope == "companies":
            return self._company_fields()

        context = "list_custom_fields"
        fields = []
        failures = []
        for field_type in CUSTOM_FIELD_TYPES:
            try:
                response = self._request(
                    "GET",
                    f"{self.base_url}/hierarchy-entities/custom-fields",
                    params={"type": field_type},
                )
            except requests.exceptions.RequestException as e:
                logger.warning("custom_field_type_fetch_failed", field_type=field_type, error=str(e))
                failures.append(sanitize_exception(e, context))
                continue

            if not response.ok:
                logger.warning(
                    "custom_field_type_fetch_failed",
                    field_type=field_type,
                    status_code=response.status_code
                )
                message = sanitize_api_error(response.status_code, response.text, context)
                if response.status_code in (401, 403):
                    raise SourceUnavailableError("custom-fields", message)
                failures.append(message)
                continue

            for raw in response.json().get("data") or []:
                fields.append(CustomField(
                    id=raw["id"],
                    name=raw.get("name") or raw["id"],
                    type=raw.get("type") or field_type,
                    description=raw.get("description"),
                ))

        if len(failures) == len(CUSTOM_FIELD_TYPES):
            raise SourceUnavailableError("custom-fields", failures[0])

        logger.info("custom_fields_listed", scope=scope, count=len(fields), failed_types=len(failures))
        return fields

    def _company_fields(self) -> list[CustomField]:
        context = "list_company_fields"
        try:
            response = self._request("GET", f"{self.base_url}/companies/custom-fields")
        except requests.exceptions.RequestException as e:
            raise SourceUnavailableError("companies", sanitize_exception(e, context))
        if not response.ok:
            raise SourceUnavailableError(
                "companies",
                sanitize_api_error(response.status_code, response.text, context)
            )
        return [
            CustomField(id=raw["id"], name=raw.get("name") or raw["id"], type=raw.get("type") or "text")
            for raw in response.json().get("data") or []
        ]

    def _entity_fields(self, entity_type: str) -> list[CustomField]:
        context = "get_entity_configuration"
        try:
            response = self._request(
                "GET",
                f"{self.v2_base_url}/entities/configurations/{entity_type}",
                v2=True,
            )
        except requests.exceptions.RequestException as e:
            raise SourceUnavailableError(entity_type, sanitize_exception(e, context))
        if not response.ok:
            raise SourceUnavailableError(
                entity_type,
                sanitize_api_error(response.status_code, response.text, context)
            )

        body = response.json()
        config = body.get("data", body)
        fields = [
            CustomField(
                id=key,
                name=raw.get("label") or raw.get("name") or key,
                type=raw.get("schema") or raw.get("type") or "text",
            )
            for key, raw in (config.get("fields") or {}).items()
        ]
        if not fields:
            fields = [
                CustomField(id="name", name="Name", type="text"),
                CustomField(id="description", name="Description", type="richText"),
            ]
        return fields

    # ===================
    # RECORD SINK
    # ===================

    def apply_field_value(
        self,
        entity_id: str,
        field_id: str,
        field_type: str,
        value: Any,
        scope: str = "features",
    ) -> SinkResult:
        """Set one custom field value."""
        context = "set_field_value"
        url, params = self._value_url(entity_id, field_id, scope)
        payload = {"data": {"type": field_type, "value": value}}

        try:
            response = self._request("PUT", url, params=params, payload=payload)
        except requests.exceptions.RequestException as e:
            return self._sink_exception(e, context)

        if not response.ok:
            return self._sink_failure(response, context)

        return SinkResult(success=True, record_id=entity_id, status_code=response.status_code)

    def create_record(
        self,
        kind: str,
        fields: dict[str, Any],
        parent_id: Optional[str] = None
    ) -> SinkResult:
        """
        Create a note, company or v2 entity.

        Args:
            kind: "notes", "companies" or a v2 entity type
            fields: Request fields, already formatted for the target API
            parent_id: Parent entity (v2 only)

        Returns:
            SinkResult with the created record id
        """
        context = f"create_{kind}"

        if kind in ENTITY_TYPES:
            payload: dict = {"data": {"type": kind, "fields": fields}}
            if parent_id:
                payload["data"]["relationships"] = [
                    {"type": "parent", "target": {"id": parent_id}}
                ]
            url, v2 = f"{self.v2_base_url}/entities", True
        elif kind in ("notes", "companies"):
            payload, url, v2 = dict(fields), f"{self.base_url}/{kind}", False
        else:
            raise ValueError(f"Cannot create records of kind: {kind}")

        try:
            response = self._request("POST", url, v2=v2, payload=payload)
        except requests.exceptions.RequestException as e:
            return self._sink_exception(e, context)

        if not response.ok:
            return self._sink_failure(response, context)

        record_id = self._created_id(response)
        logger.debug("productboard_record_created", kind=kind, record_id=record_id)
        return SinkResult(success=True, record_id=record_id, status_code=response.status_code)

    def update_record(self, kind: str, record_id: str, fields: dict[str, Any]) -> SinkResult:
        """Patch the fields of an existing v2 entity."""
        if kind not in ENTITY_TYPES:
            raise ValueError(f"Cannot update records of kind: {kind}")

        context = f"update_{kind}"
        try:
            response = self._request(
                "PATCH",
                f"{self.v2_base_url}/entities/{record_id}",
                v2=True,
                payload={"data": {"fields": fields}},
            )
        except requests.exceptions.RequestException as e:
            return self._sink_exception(e, context)

        if not response.ok:
            return self._sink_failure(response, context)

        return SinkResult(success=True, record_id=record_id, status_code=response.status_code)

    def delete_record(self, kind: str, record_id: str) -> SinkResult:
        """
        Delete a record.

        A 404 counts as success: the record is already gone.
        """
        context = f"delete_{kind}"
        if kind in ENTITY_TYPES:
            url, v2 = f"{self.v2_base_url}/entities/{record_id}", True
        elif kind in V1_KINDS:
            url, v2 = f"{self.base_url}/{kind}/{record_id}", False
        else:
            raise ValueError(f"Cannot delete records of kind: {kind}")

        try:
            response = self._request("DELETE", url, v2=v2)
        except requests.exceptions.RequestException as e:
            return self._sink_exception(e, context)

        if response.ok or response.status_code == 404:
            return SinkResult(success=True, record_id=record_id, status_code=response.status_code)

        return self._sink_failure(response, context)
