import getpass
import json
import logging
import mimetypes
import os
import sys
from pathlib import Path
from urllib.parse import urlsplit

from flask import (
    Flask, request, redirect, url_for, current_app,
    render_template_string, send_from_directory,
    session, abort
)

from auth import check_credentials, hash_password, login_required
from captures import CAPTURE_PREFIX, MEDIA_IMAGE, build_gallery_state
from gallery_config import (
    DEFAULT_CONFIG, ConfigError, build_config_document, default_config_path, load_config,
    read_config_data, setup_logging, write_config
)


# ==========================================================
#  Helpers
# ==========================================================

def validate_identifier(value: str) -> bool:
    """
    Avoid path traversal with very simple checks:
    - no / or \\ characters
    - non-empty
    """
    if not value:
        return False
    return ("/" not in value) and ("\\" not in value)


def safe_next_url(value) -> str:
    # Only same-site absolute paths; "//host" would leave the site.
    if value and value.startswith("/") and not value.startswith("//"):
        return value
    return url_for("index")


def media_origin(base_url: str) -> str:
    parts = urlsplit(base_url)
    if parts.scheme and parts.netloc:
        return f"{parts.scheme}://{parts.netloc}"
    return ""


def video_mime_type(name: str) -> str:
    guessed, _ = mimetypes.guess_type(name)
    if guessed and guessed.startswith("video/"):
        return guessed
    return "video/ogg"


def set_admin_password_interactive(config_path: Path) -> None:
    """
    CLI helper: python gallery_server.py --set-admin-password

    Prompts for a new admin web password, hashes it, and writes it
    into the config file as web_password_hash.
    """
    if not config_path.exists():
        print(f"Config file not found: {config_path}. Open the web UI once to create it.")
        return

    print("This will set (or reset) the ADMIN web password for the capture gallery.")
    pw1 = getpass.getpass("New web password: ")
    pw2 = getpass.getpass("Repeat web password: ")

    if pw1 != pw2:
        print("Passwords do not match. Aborting.")
        return

    if not pw1:
        print("Password cannot be empty. Aborting.")
        return

    try:
        current_cfg = read_config_data(config_path)
    except ConfigError as e:
        print(f"{e}. Aborting.")
        return

    current_cfg["web_password_hash"] = hash_password(pw1)
    write_config(config_path, current_cfg)

    print("Admin web password updated successfully.")
    print("Restart the server for the change to take effect.")


# ==========================================================
#  HTML TEMPLATES
# ==========================================================

BASE_STYLE = """
    * {
      margin: 0;
      padding: 0;
      box-sizing: border-box;
    }
    body {
      font-family: 'Segoe UI', 'Google Sans', Roboto, -apple-system, BlinkMacSystemFont, sans-serif;
      background: #ffffff;
      color: #202124;
      min-height: 100vh;
    }
    label {
      display: block;
      font-size: 14px;
      color: #5f6368;
      margin-bottom: 8px;
      font-weight: 500;
    }
    input[type="text"], input[type="password"] {
      width: 100%;
      padding: 13px 15px;
      margin-bottom: 20px;
      border: 1px solid #dadce0;
      border-radius: 4px;
      font-size: 16px;
      color: #202124;
    }
    .btn-primary {
      width: 100%;
      padding: 14px;
      background: #1a73e8;
      color: white;
      border: none;
      border-radius: 4px;
      font-size: 14px;
      font-weight: 500;
      cursor: pointer;
    }
    .btn-primary:hover {
      background: #1765cc;
    }
    .error {
      background: #fce8e6;
      color: #d93025;
      padding: 12px 16px;
      border-radius: 4px;
      font-size: 14px;
      margin-bottom: 20px;
      border-left: 3px solid #d93025;
    }
    .card-container {
      width: 100%;
      max-width: 450px;
      margin: 80px auto;
      padding: 48px 40px 36px;
      border: 1px solid #dadce0;
      border-radius: 8px;
      box-shadow: 0 1px 3px rgba(60, 64, 67, 0.3);
    }
    .card-container h1 {
      font-size: 24px;
      font-weight: 400;
      text-align: center;
      margin-bottom: 24px;
    }
"""

LOGIN_TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>Sign in – {{ site_name }}</title>
  <style>{{ base_style|safe }}</style>
</head>
<body>
  <div class="card-container">
    <h1>{{ site_name }}</h1>
    {% if error %}
      <div class="error">{{ error }}</div>
    {% endif %}
    <form method="post">
      <label for="username">Username</label>
      <input type="text" id="username" name="username" autofocus required>
      <label for="password">Password</label>
      <input type="password" id="password" name="password" required>
      <button type="submit" class="btn-primary">Sign in</button>
    </form>
  </div>
</body>
</html>
"""

SETUP_TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>Setup – {{ site_name }}</title>
  <style>
    {{ base_style|safe }}
    textarea.code {
      width: 100%;
      height: 14em;
      font-family: monospace;
      padding: 8px;
      margin: 12px 0;
    }
    p {
      font-size: 14px;
      color: #5f6368;
      margin-bottom: 16px;
    }
  </style>
</head>
<body>
  <div class="card-container">
    <h1>{{ site_name }}</h1>
    {% if error %}
      <div class="error">Error: {{ error }}</div>
    {% endif %}
    {% if document %}
      <p>Create a new "{{ config_name }}" file with the following content at
         <code>{{ config_path }}</code>, then restart the server:</p>
      <textarea class="code" readonly>{{ document }}</textarea>
    {% else %}
      <p>No configuration file has been detected. Input your information below to create it:</p>
      <form method="post">
        <label for="username">Username</label>
        <input type="text" id="username" name="username" value="{{ form.get('username', '') }}">
        <label for="password">Password</label>
        <input type="password" id="password" name="password">
        <label for="capture_dir">Path to directory where captured images and videos are stored</label>
        <input type="text" id="capture_dir" name="capture_dir" placeholder="/path/to/capture/dir"
               value="{{ form.get('capture_dir', '') }}">
        <label for="capture_base_url">URL to directory where images and videos are stored (optional)</label>
        <input type="text" id="capture_base_url" name="capture_base_url" placeholder="https://example.com/capture/dir"
               value="{{ form.get('capture_base_url', '') }}">
        <button type="submit" class="btn-primary">Create configuration</button>
      </form>
    {% endif %}
  </div>
</body>
</html>
"""

GALLERY_TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{% if active_label %}{{ active_label }} – {% endif %}{{ site_name }}</title>
  <style>
    {{ base_style|safe }}
    .header {
      border-bottom: 1px solid #e8eaed;
      padding: 16px 24px;
      display: flex;
      align-items: center;
      justify-content: space-between;
      position: sticky;
      top: 0;
      background: #ffffff;
      z-index: 10;
    }
    .header h1 {
      font-size: 22px;
      font-weight: 400;
      color: #5f6368;
    }
    .btn-logout, .date-link {
      padding: 8px 24px;
      color: #1a73e8;
      border: 1px solid #dadce0;
      border-radius: 4px;
      font-size: 14px;
      font-weight: 500;
      text-decoration: none;
      display: inline-block;
    }
    .date-link.active {
      background: #1a73e8;
      border-color: #1a73e8;
      color: #ffffff;
    }
    .main-container {
      max-width: 1440px;
      margin: 0 auto;
      padding: 32px 24px;
    }
    .date-menu, .captures {
      list-style: none;
      display: flex;
      flex-wrap: wrap;
      gap: 12px;
      margin-bottom: 32px;
    }
    .captures li {
      font-size: 13px;
      color: #5f6368;
    }
    .captures strong {
      display: block;
      margin-bottom: 4px;
    }
    .thumbnail {
      width: {{ thumb_width }}px;
      height: {{ thumb_height }}px;
      object-fit: cover;
      border-radius: 4px;
      background: #f1f3f4;
    }
    .empty-state {
      text-align: center;
      padding: 80px 20px;
      color: #5f6368;
    }
  </style>
</head>
<body>
  <header class="header">
    <h1>{{ site_name }}</h1>
    <a href="{{ url_for('logout') }}" class="btn-logout">Sign out</a>
  </header>

  <div class="main-container">
    {% if error %}
      <div class="error">Error: {{ error }}</div>
    {% endif %}

    <ul class="date-menu">
      {% for d in dates %}
        <li>
          <a class="date-link{% if d.compact == active_compact %} active{% endif %}"
             href="{{ url_for('index', date=d.compact) }}">{{ d.label }}</a>
        </li>
      {% endfor %}
    </ul>

    {% if captures %}
      <ul class="captures">
        {% for c in captures %}
          <li>
            <strong>{{ c.label }}</strong>
            {% if c.kind == 'image' %}
              <img class="thumbnail" src="{{ c.url }}" alt="{{ c.name }}" loading="lazy">
            {% else %}
              <video class="thumbnail" controls preload="none">
                <source src="{{ c.url }}" type="{{ c.mime }}">
                Your browser does not support the video tag.
              </video>
            {% endif %}
          </li>
        {% endfor %}
      </ul>
    {% else %}
      <div class="empty-state">{% if active_label %}No captures for this day{% else %}No captures yet{% endif %}</div>
    {% endif %}
  </div>
</body>
</html>
"""


# ==========================================================
#  Application factory
# ==========================================================

def create_app(config_path=None) -> Flask:
    config_path = Path(config_path) if config_path else default_config_path()
    config = load_config(config_path)

    app = Flask(__name__)
    app.config["GALLERY"] = config
    app.config["GALLERY_CONFIG_PATH"] = config_path

    if config is None:
        logging.warning("No config file at %s, starting in setup mode", config_path)
        app.secret_key = os.urandom(32)
        extra_src = ""
    else:
        app.secret_key = config.secret_key.encode("utf-8")
        extra_src = media_origin(config.capture_base_url)

    csp = (
        f"default-src 'self'; img-src 'self' data: {extra_src}; media-src 'self' {extra_src}; "
        "style-src 'self' 'unsafe-inline'; script-src 'self' 'unsafe-inline';"
    ).replace(" ;", ";")

    @app.after_request
    def set_security_headers(response):
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = csp
        return response

    @app.before_request
    def require_config():
        if current_app.config["GALLERY"] is None and request.endpoint not in ("setup", "static"):
            return redirect(url_for("setup"))
        return None

    register_routes(app)
    return app


# ==========================================================
#  Web routes
# ==========================================================

def register_routes(app: Flask) -> None:

    @app.route("/setup", methods=["GET", "POST"])
    def setup():
        if current_app.config["GALLERY"] is not None:
            return redirect(url_for("index"))

        config_path = current_app.config["GALLERY_CONFIG_PATH"]
        error = None
        document = None
        if request.method == "POST":
            try:
                document = json.dumps(build_config_document(request.form), indent=4)
            except ConfigError as e:
                error = str(e)

        return render_template_string(
            SETUP_TEMPLATE,
            base_style=BASE_STYLE,
            site_name=DEFAULT_CONFIG["site_name"],
            error=error,
            document=document,
            form=request.form,
            config_name=config_path.name,
            config_path=config_path,
        )

    @app.route("/login", methods=["GET", "POST"])
    def login():
        config = current_app.config["GALLERY"]
        error = None
        if request.method == "POST":
            user = request.form.get("username", "")
            pw = request.form.get("password", "")
            if check_credentials(config, user, pw):
                session["logged_in"] = True
                logging.info("Login succeeded for %s from %s", user, request.remote_addr)
                return redirect(safe_next_url(request.args.get("next")))
            logging.warning("Login failed for %r from %s", user, request.remote_addr)
            error = "Invalid username or password."

        return render_template_string(
            LOGIN_TEMPLATE,
            base_style=BASE_STYLE,
            site_name=config.site_name,
            error=error,
        )

    @app.route("/logout")
    def logout():
        session.clear()
        logging.info("Logged out from %s", request.remote_addr)
        return redirect(url_for("login"))

    @app.route("/")
    @login_required
    def index():
        config = current_app.config["GALLERY"]
        state = build_gallery_state(config.capture_dir, request.args.get("date"))

        captures = []
        for record in state.active_records:
            if config.capture_base_url:
                url = record.url(config.capture_base_url)
            else:
                url = url_for("serve_file", filename=record.name)
            captures.append({
                "name": record.name,
                "label": record.captured_at.label,
                "kind": record.media_kind,
                "url": url,
                "mime": "" if record.media_kind == MEDIA_IMAGE else video_mime_type(record.name),
            })

        return render_template_string(
            GALLERY_TEMPLATE,
            base_style=BASE_STYLE,
            site_name=config.site_name,
            thumb_width=config.thumbnail_width,
            thumb_height=config.thumbnail_height,
            error=state.error.message if state.error else None,
            dates=state.dates,
            active_compact=state.active_date.compact if state.active_date else None,
            active_label=state.active_date.label if state.active_date else None,
            captures=captures,
        )

    @app.route("/files/<filename>")
    @login_required
    def serve_file(filename):
        if not validate_identifier(filename) or not filename.startswith(CAPTURE_PREFIX):
            abort(400)
        config = current_app.config["GALLERY"]
        capture_dir = Path(config.capture_dir)
        if not capture_dir.is_dir():
            abort(404)
        return send_from_directory(capture_dir, filename)


# ==========================================================
#  Main entry point
# ==========================================================

def main() -> None:
    config_path = default_config_path()

    if "--set-admin-password" in sys.argv:
        set_admin_password_interactive(config_path)
        return

    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise SystemExit(str(e))

    setup_logging(config.log_file if config else "capture_gallery.log")
    app = create_app(config_path)

    host = config.host if config else "127.0.0.1"
    port = config.port if config else 5000
    logging.info("Serving capture gallery on http://%s:%d", host, port)
    # Dev server only. For real use, prefer gunicorn:
    #   gunicorn --bind 127.0.0.1:5000 --workers 3 "gallery_server:create_app()"
    app.run(host=host, port=port, debug=False)


if __name__ == "__main__":
    main()
