import os
import time
from datetime import datetime, timezone

import psutil
from flask import Blueprint, current_app, jsonify, request

from api_common import cache, ok

bp = Blueprint("cache_admin", __name__, url_prefix="/api")

_process = psutil.Process(os.getpid())


@bp.route("/cache-stats", methods=["GET", "DELETE"])
def cache_stats():
    c = cache()
    if request.method == "DELETE":
        prefix = request.args.get("prefix")
        if prefix:
            count = c.invalidate_by_prefix(prefix)
            return ok("Invalidated %d entries with prefix: %s" % (count, prefix), count=count)
        count = c.clear()
        current_app.logger.info("[cache] cleared %d entries", count)
        return ok("Cache cleared", count=count)

    mem = _process.memory_info()
    return jsonify({
        "cache": c.stats(),
        "uptime": round(time.time() - current_app.extensions["started_at"], 3),
        "memory": {"rss": mem.rss, "vms": mem.vms},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


@bp.route("/ping", methods=["GET"])
def ping():
    return jsonify({"ok": True})
