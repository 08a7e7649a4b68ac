"""HTTP API for the content cache."""

import asyncio
import threading
from typing import Any, Dict, List, Optional

import structlog
from flask import Blueprint, Flask, current_app, jsonify, request

from content_cache.cache.models import CacheEntry, CacheResult
from content_cache.cache.service import CacheService
from content_cache.errors import BaseError, GenerationError, InvalidParametersError

logger = structlog.get_logger(__name__)

OWNER_HEADER = "X-User-Id"

blog = Blueprint("blog", __name__, url_prefix="/blog")


class BackgroundLoop(threading.Thread):
    """Event loop running in a daemon thread, shared by every request."""

    def __init__(self):
        threading.Thread.__init__(self, daemon=True)
        self.loop = asyncio.new_event_loop()
        self._ready = threading.Event()

    def run(self):
        asyncio.set_event_loop(self.loop)
        self._ready.set()
        self.loop.run_forever()

    def start(self):
        super().start()
        self._ready.wait()

    def submit(self, coro):
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result()

    def shutdown(self):
        if self.is_alive():
            self.loop.call_soon_threadsafe(self.loop.stop)
            self.join()


def run_async(coro):
    """Run a service coroutine on the application event loop and wait for it."""
    return current_app.extensions["content_cache_loop"].submit(coro)


def _service() -> CacheService:
    return current_app.extensions["content_cache"]


def _owner_id() -> Optional[str]:
    return request.headers.get(OWNER_HEADER) or None


def serialize_entry(entry: CacheEntry, cached: bool, persisted: bool = True) -> Dict[str, Any]:
    """Render a cache entry in the shape front-end callers expect."""
    params = entry.parameters
    keywords = params.get("keywords") or ""
    return {
        "id": entry.id,
        **entry.artifact.model_dump(by_alias=True),
        "domain": entry.domain,
        "keywords": [k for k in keywords.split(",") if k] if isinstance(keywords, str) else keywords,
        "targetAudience": params.get("target_audience"),
        "tone": params.get("tone"),
        "includeImages": params.get("include_images"),
        "seoOptimized": params.get("seo_optimized"),
        "createdAt": entry.created_at.isoformat(),
        "updatedAt": entry.updated_at.isoformat(),
        "expiresAt": entry.expires_at.isoformat() if entry.expires_at else None,
        "isLatest": entry.is_latest,
        "status": "draft",
        "cached": cached,
        "persisted": persisted,
    }


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise InvalidParametersError(
            "Request body must be a JSON object", details={"type": type(body).__name__}
        )
    return body


def _result_response(result: CacheResult):
    return jsonify(
        {
            "success": True,
            "blog": serialize_entry(result.entry, result.cached, result.persisted),
        }
    )


def _exclusions(body: Dict[str, Any]) -> List[str]:
    titles: List[str] = list(body.get("exclusions") or [])
    for item in body.get("aiHistory") or []:
        if isinstance(item, dict) and item.get("title"):
            titles.append(item["title"])
        elif isinstance(item, str):
            titles.append(item)
    return titles


@blog.errorhandler(InvalidParametersError)
def handle_invalid_parameters(error: InvalidParametersError):
    return jsonify({"success": False, **error.to_dict()}), 400


@blog.errorhandler(GenerationError)
def handle_generation_error(error: GenerationError):
    logger.error("generation_request_failed", error=error.message, details=error.details)
    return jsonify({"success": False, **error.to_dict()}), 502


@blog.errorhandler(BaseError)
def handle_base_error(error: BaseError):
    return jsonify({"success": False, **error.to_dict()}), 500


@blog.route("/latest/<domain>", methods=["GET"])
def latest(domain: str):
    """Get the latest artifact for the requesting owner."""
    owner_id = _owner_id()
    if not owner_id:
        return jsonify({"success": False, "error": "User authentication required"}), 401

    entry = run_async(_service().get_latest_user_content(owner_id, domain))
    if entry is None:
        return jsonify({"success": False, "message": "No existing content found"})
    return jsonify({"success": True, "blog": serialize_entry(entry, cached=True)})


@blog.route("/generate", methods=["POST"])
def generate():
    """Serve a blog artifact from cache or generate it."""
    body = _json_body()
    result = run_async(_service().get_or_generate(body, owner_id=_owner_id(), is_latest=True))
    return _result_response(result)


@blog.route("/regenerate", methods=["POST"])
def regenerate():
    """Invalidate and regenerate, avoiding previously seen titles."""
    body = _json_body()
    result = run_async(
        _service().regenerate(
            body,
            owner_id=_owner_id(),
            exclusions=_exclusions(body),
            exclude_content=body.get("excludeContent"),
            existing_entry_id=body.get("existingContentId"),
        )
    )
    return _result_response(result)


@blog.route("/cache/stats", methods=["GET"])
def cache_stats():
    """Report total, active and expired entry counts."""
    stats = run_async(_service().get_cache_stats())
    if stats is None:
        return jsonify({"success": False, "message": "Cache unavailable"}), 503
    return jsonify({"success": True, "stats": stats.model_dump(mode="json", by_alias=True)})


@blog.route("/cache/cleanup", methods=["POST"])
def cache_cleanup():
    """Delete expired entries."""
    purged = run_async(_service().cleanup_expired_cache())
    if purged is None:
        return jsonify({"success": False, "message": "Failed to clean up cache"}), 503
    return jsonify(
        {"success": True, "purged": purged, "message": "Expired cache entries cleaned up"}
    )


def create_app(service: CacheService) -> Flask:
    """Build the Flask application around an existing cache service.

    Args:
        service: Cache service shared by every request
    """
    app = Flask(__name__)
    app.extensions["content_cache"] = service
    loop = BackgroundLoop()
    loop.start()
    app.extensions["content_cache_loop"] = loop
    app.register_blueprint(blog)
    return app
