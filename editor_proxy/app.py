"""Flask app exposing the editor's provider proxies.

Routes:
  POST /api/generate-video     {imageUrl, prompt, duration?, aspectRatio?, motion?, creativityLevel?, model?}
  GET  /api/video-status       ?taskId=...
  POST /api/remove-background  {imageUrl}
  POST /api/generate-image     {prompt, aspect_ratio?, finetune_id?, ...}
  GET  /api/serve-image        ?path=/images/...
  GET  /health
"""
import os
import random
import logging
from typing import Optional

from flask import Flask, request, jsonify, send_file
from werkzeug.exceptions import BadRequest

from .config import Settings
from .token_store import TokenStore
from .kling_auth import KlingTokenManager
from .video_proxy import VideoProxy
from .background_proxy import BackgroundRemovalProxy
from .image_proxy import ImageGenerationProxy
from .errors import error_envelope, system_error

logger = logging.getLogger(__name__)


class AppContext:
    """Owns the token store and the proxies built on top of it."""

    def __init__(self, settings: Optional[Settings] = None, token_store: Optional[TokenStore] = None, rng: Optional[random.Random] = None):
        self.settings = settings or Settings()
        self.token_store = token_store if token_store is not None else TokenStore()
        self.token_manager = KlingTokenManager(
            self.settings.kling_access_key,
            self.settings.kling_secret_key,
            store=self.token_store,
            ttl=self.settings.kling_token_ttl,
            buffer=self.settings.kling_token_buffer,
        )
        self.video = VideoProxy(self.settings, self.token_manager, rng=rng)
        self.background = BackgroundRemovalProxy(self.settings)
        self.image = ImageGenerationProxy(self.settings)


IMAGE_PREFIX = "/images/"
IMAGE_MIMETYPES = {".png": "image/png", ".jpg": "image/jpeg", ".jpeg": "image/jpeg"}


def image_mimetype(path: str) -> str:
    return IMAGE_MIMETYPES.get(os.path.splitext(path)[1].lower(), "image/png")


def resolve_image_path(public_dir: str, path: Optional[str]) -> Optional[str]:
    """Map `/images/...` onto a file under `public_dir/images`, or None if the
    path is outside that directory."""
    if not path or not path.startswith(IMAGE_PREFIX):
        return None
    root = os.path.realpath(os.path.join(public_dir, "images"))
    target = os.path.realpath(os.path.join(public_dir, path.lstrip("/")))
    if os.path.commonpath([root, target]) != root or target == root:
        return None
    return target


def create_app(context: Optional[AppContext] = None) -> Flask:
    ctx = context or AppContext()
    app = Flask(__name__)
    app.config["PROXY_CONTEXT"] = ctx

    if not ctx.settings.kling_configured:
        logger.warning("KLING_ACCESS_KEY/KLING_SECRET_KEY not set; video routes will return CONFIGURATION_ERROR")
    if not ctx.settings.fal_key:
        logger.warning("FAL_KEY not set; fal requests will be rejected by the provider")

    def json_or_error(handler, failure_message):
        try:
            payload = request.get_json(force=True)
        except BadRequest as exc:
            logger.error(f"{failure_message}: request body is not valid JSON")
            body, status = error_envelope(system_error(exc, failure_message))
            return jsonify(body), status
        body, status = handler(payload)
        return jsonify(body), status

    @app.route("/api/generate-video", methods=["POST"])
    def generate_video():
        return json_or_error(ctx.video.generate, "Failed to generate video")

    @app.route("/api/video-status", methods=["GET"])
    def video_status():
        body, status = ctx.video.check_status(request.args.get("taskId"))
        return jsonify(body), status

    @app.route("/api/remove-background", methods=["POST"])
    def remove_background():
        return json_or_error(ctx.background.remove_background, "Failed to remove background")

    @app.route("/api/generate-image", methods=["POST"])
    def generate_image():
        return json_or_error(ctx.image.generate, "Failed to generate image")

    @app.route("/api/serve-image", methods=["GET"])
    def serve_image():
        path = request.args.get("path")
        try:
            target = resolve_image_path(ctx.settings.public_dir, path)
            if target is None:
                return jsonify({"error": "Invalid image path"}), 400
            if not os.path.isfile(target):
                return jsonify({"error": "Image not found"}), 404
            resp = send_file(target, mimetype=image_mimetype(target))
        except OSError:
            logger.exception(f"Error serving image {path!r}")
            return jsonify({"error": "Internal server error"}), 500
        resp.headers["Cache-Control"] = "public, max-age=31536000"
        resp.headers["Access-Control-Allow-Origin"] = "*"
        resp.headers["Access-Control-Allow-Methods"] = "GET"
        resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return resp

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    return app
