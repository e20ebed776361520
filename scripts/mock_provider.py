"""Small Flask app that simulates the Kling and fal endpoints the proxy calls.

POST /v1/video/generations      -> {"id": "...", "status": "processing"}
GET  /v1/video/generations/<id> -> task status with output once "done"
POST /fal-ai/birefnet           -> {"image": {"url": "..."}}
POST /fal-ai/flux-pro/...        -> {"images": [{"url": "..."}], "seed": ...}

Run locally for development:
    python scripts/mock_provider.py

Then point KLING_API_BASE and FAL_API_BASE to http://localhost:9090
"""
import os
import time
import hashlib
from flask import Flask, request, jsonify

app = Flask(__name__)

# task_id -> creation time; tasks complete after MOCK_TASK_SECONDS
_tasks = {}


def _task_seconds() -> float:
    return float(os.getenv("MOCK_TASK_SECONDS", "10"))


@app.route("/v1/video/generations", methods=["POST"])
def create_generation():
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme != "Bearer" or not token.strip():
        return jsonify({"message": "missing bearer token"}), 401

    payload = request.get_json(force=True, silent=True) or {}
    image = payload.get("image") or ""
    prompt = payload.get("prompt") or ""
    if not image or not prompt:
        return jsonify({"message": "image and prompt are required"}), 400

    # Stable task id from the request contents
    key = (image + prompt + str(payload.get("seed"))).encode("utf-8")
    task_id = "task_" + hashlib.sha1(key).hexdigest()[:12]
    _tasks.setdefault(task_id, time.time())

    return jsonify({"id": task_id, "status": "processing", "estimated_time": int(payload.get("duration", 5)) * 10})


@app.route("/v1/video/generations/<task_id>", methods=["GET"])
def get_generation(task_id):
    created = _tasks.get(task_id)
    if created is None:
        return jsonify({"message": f"task {task_id} not found"}), 404

    elapsed = time.time() - created
    total = _task_seconds()
    if elapsed < total:
        return jsonify({
            "id": task_id,
            "status": "running",
            "progress": int(elapsed / total * 100),
            "estimated_time_remaining": int(total - elapsed),
        })

    return jsonify({
        "id": task_id,
        "status": "succeeded",
        "processing_time": total,
        "output": {
            "video_url": f"https://videos.example/{task_id}.mp4",
            "thumbnail_url": f"https://videos.example/{task_id}.jpg",
            "duration": 5,
            "file_size": 1048576,
            "resolution": "1280x720",
        },
    })


@app.route("/fal-ai/birefnet", methods=["POST"])
def birefnet():
    scheme, _, key = request.headers.get("Authorization", "").partition(" ")
    if scheme != "Key" or not key.strip():
        return jsonify({"detail": "missing fal key"}), 401

    payload = request.get_json(force=True, silent=True) or {}
    image_url = payload.get("image_url") or ""
    if not image_url:
        return jsonify({"detail": "image_url is required"}), 400

    h = hashlib.sha1(image_url.encode("utf-8")).hexdigest()[:10]
    return jsonify({"image": {"url": f"https://fal.example/files/{h}-nobg.png", "content_type": "image/png"}})


@app.route("/fal-ai/flux-pro/v1.1", methods=["POST"])
@app.route("/fal-ai/flux-pro/v1.1-ultra-finetuned", methods=["POST"])
def flux_pro():
    scheme, _, key = request.headers.get("Authorization", "").partition(" ")
    if scheme != "Key" or not key.strip():
        return jsonify({"detail": "missing fal key"}), 401

    payload = request.get_json(force=True, silent=True) or {}
    prompt = payload.get("prompt") or ""
    if not prompt:
        return jsonify({"detail": "prompt is required"}), 400

    h = hashlib.sha1((request.path + prompt).encode("utf-8")).hexdigest()[:10]
    count = int(payload.get("num_images", 1))
    resp = jsonify({
        "images": [{"url": f"https://fal.example/files/{h}-{i}.jpg", "content_type": "image/jpeg"} for i in range(count)],
        "seed": payload.get("seed", 42),
        "prompt": prompt,
    })
    resp.headers["x-fal-request-id"] = "req_" + h
    return resp


if __name__ == "__main__":
    port = int(os.getenv("MOCK_PROVIDER_PORT", "9090"))
    app.run(host="0.0.0.0", port=port)
