# app/content/sanity.py
#
# Access to the Sanity content store over its HTTP query and mutate APIs.
#
# Every call returns a ContentResult instead of raising, so callers must
# look at the status: "not configured" and "unreachable" are never
# confused with "no document". Writes need SANITY_API_TOKEN and always go
# to the live API, never the CDN.

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import requests

from app.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class ContentStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    NOT_CONFIGURED = "not_configured"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class ContentResult:
    status: ContentStatus
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ContentStatus.OK

    @classmethod
    def found(cls, value: Any) -> "ContentResult":
        if value is None or value == []:
            return cls(ContentStatus.NOT_FOUND)
        return cls(ContentStatus.OK, value)


QUESTION_PROJECTION = """
    text,
    type,
    options,
    correctOption,
    category,
    weight,
    "image": image.asset->url,
    "file": file.asset->{
        url,
        "filename": originalFilename,
        size,
        mimeType
    }
"""

QUIZ_PROJECTION = """{
    _id,
    _createdAt,
    title,
    isActive,
    scheduledStartTime,
    questions[] {%s},
    instructions
}""" % QUESTION_PROJECTION

ACTIVE_QUIZ_QUERY = '*[_type == "registrationQuiz" && isActive == true][0] ' + QUIZ_PROJECTION
LATEST_QUIZ_QUERY = '*[_type == "registrationQuiz"] | order(_createdAt desc)[0] ' + QUIZ_PROJECTION


class SanityClient:
    def __init__(self, cfg: Optional[Settings] = None, *, session: Optional[requests.Session] = None):
        cfg = cfg or default_settings
        self._project_id = cfg.SANITY_PROJECT_ID
        self._dataset = cfg.SANITY_DATASET
        self._api_version = cfg.SANITY_API_VERSION
        self._use_cdn = cfg.SANITY_USE_CDN and not cfg.SANITY_API_TOKEN
        self._timeout = float(cfg.SANITY_TIMEOUT_SECONDS)

        self._headers: Dict[str, str] = {"Accept": "application/json"}
        if cfg.SANITY_API_TOKEN:
            self._headers["Authorization"] = f"Bearer {cfg.SANITY_API_TOKEN}"

        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self._project_id)

    def _query_url(self) -> str:
        host = "apicdn.sanity.io" if self._use_cdn else "api.sanity.io"
        return (
            f"https://{self._project_id}.{host}"
            f"/v{self._api_version}/data/query/{self._dataset}"
        )

    def fetch(self, query: str, params: Optional[Dict[str, Any]] = None) -> ContentResult:
        if not self.configured:
            logger.error("SANITY_PROJECT_ID is not set")
            return ContentResult(ContentStatus.NOT_CONFIGURED, error="Sanity client not configured")

        request_params: Dict[str, Any] = {"query": query}
        for key, value in (params or {}).items():
            request_params[f"${key}"] = value

        try:
            resp = self._session.get(
                self._query_url(),
                params=request_params,
                headers=self._headers,
                timeout=self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Sanity query failed: %s", e)
            return ContentResult(ContentStatus.UNAVAILABLE, error=str(e))

        return ContentResult.found(data.get("result") if isinstance(data, dict) else None)

    def fetch_active_quiz(self) -> ContentResult:
        return self.fetch(ACTIVE_QUIZ_QUERY)

    def fetch_latest_quiz(self) -> ContentResult:
        return self.fetch(LATEST_QUIZ_QUERY)

    def _mutate_url(self) -> str:
        return (
            f"https://{self._project_id}.api.sanity.io"
            f"/v{self._api_version}/data/mutate/{self._dataset}"
        )

    def mutate(self, mutations: List[Dict[str, Any]]) -> ContentResult:
        """Commits one transaction; the value is the list of per-mutation results."""
        if not self.configured:
            logger.error("SANITY_PROJECT_ID is not set")
            return ContentResult(ContentStatus.NOT_CONFIGURED, error="Sanity client not configured")

        try:
            resp = self._session.post(
                self._mutate_url(),
                params={"returnIds": "true", "returnDocuments": "true"},
                json={"mutations": mutations},
                headers=self._headers,
                timeout=self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Sanity mutation failed: %s", e)
            return ContentResult(ContentStatus.UNAVAILABLE, error=str(e))

        return ContentResult.found(data.get("results") if isinstance(data, dict) else None)

    def create_document(self, document: Dict[str, Any]) -> ContentResult:
        return self.mutate([{"create": document}])

    def set_fields(self, document_id: str, fields: Dict[str, Any]) -> ContentResult:
        return self.mutate([{"patch": {"id": document_id, "set": fields}}])

    def close(self) -> None:
        self._session.close()
