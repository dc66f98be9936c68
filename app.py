from flask import (
    Blueprint,
    Flask,
    abort,
    current_app,
    jsonify,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from flask_cors import CORS
from flask_login import LoginManager, current_user, login_required, login_user, logout_user
from flask_pymongo import PyMongo
from datetime import datetime, timezone
from dotenv import load_dotenv
import os
import json
import logging
import secrets
import traceback

from accounts import RegistrationError, authenticate_local, register_local_user
from google_oauth import GoogleOAuthClient, OAuthError
from insights import date_label, summarize
from journal_store import DuplicateUserError, StoreError, UserStore, new_post
from sentiment import ComparativeScorer

"""
Endpoints:
GET  /                      // Home, or /posts when logged in
GET  /auth/google           // Start Google sign-in
GET  /auth/google/secrets   // Google callback
GET  /login, POST /login    // Local login
GET  /register, POST /register
GET  /logout
GET  /posts                 // The user's journal
GET  /posts/<postId>        // One entry
GET  /compose, POST /compose
GET  /insights              // Sentiment overview with chart
GET  /api/insights          // Same overview as JSON
GET  /healthz
"""


# Read environment variables from .env file
load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class Config:
    DEBUG = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    MONGO_URI = os.getenv('MONGODB_URI', 'mongodb://localhost:27017/userDB')
    SECRET_KEY = os.getenv('SECRET_KEY', 'change-me')
    GOOGLE_CLIENT_ID = os.getenv('GOOGLE_CLIENT_ID') or os.getenv('CLIENT_ID')
    GOOGLE_CLIENT_SECRET = os.getenv('GOOGLE_CLIENT_SECRET') or os.getenv('CLIENT_SECRET')
    GOOGLE_CALLBACK_URL = os.getenv('GOOGLE_CALLBACK_URL', 'http://localhost:3000/auth/google/secrets')
    PORT = int(os.getenv('PORT', '3000'))
    MAX_CONTENT_LENGTH = 1024 * 1024  # 1 MB max form payload
    MAX_POST_LENGTH = 10000


bp = Blueprint("journal", __name__)
login_manager = LoginManager()


def get_store() -> UserStore:
    return current_app.extensions["journal_store"]


def get_scorer() -> ComparativeScorer:
    return current_app.extensions["journal_scorer"]


def get_oauth_client() -> GoogleOAuthClient:
    return current_app.extensions["journal_oauth"]


@login_manager.user_loader
def load_user(user_id):
    return get_store().get_by_id(user_id)


@login_manager.unauthorized_handler
def unauthorized():
    if request.path.startswith("/api/"):
        return jsonify({"error": "Unauthorized"}), 401
    return redirect(url_for("journal.login"))


def parse_post_date(value):
    """
    Parse the compose form's date field into a naive UTC datetime.

    Blank means now. Raises ValueError on anything else that is not ISO 8601.
    """
    value = (value or "").strip()
    if not value:
        return datetime.now(timezone.utc).replace(tzinfo=None)
    # fromisoformat only learned the "Z" suffix in Python 3.11
    if value[-1] in "Zz":
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def validate_post_input(form):
    errors = []

    body = (form.get("postBody") or "").strip()
    if not body:
        errors.append("Text is required.")
    elif len(body) > current_app.config["MAX_POST_LENGTH"]:
        errors.append("Text is too long.")

    date = None
    try:
        date = parse_post_date(form.get("date"))
    except ValueError:
        errors.append("Date is not valid.")

    return errors, {"body": body, "date": date}


# Error Handlers
@bp.app_errorhandler(404)
def not_found(error):
    if request.path.startswith("/api/"):
        return jsonify({"error": "Not Found"}), 404
    return render_template("error.html", status=404, message="We couldn't find that page."), 404


@bp.app_errorhandler(500)
def internal_error(error):
    logger.error(f"Internal server error: {error}")
    if request.path.startswith("/api/"):
        return jsonify({"error": "Internal Server Error"}), 500
    return render_template("error.html", status=500, message="Something went wrong on our side."), 500


@bp.app_errorhandler(StoreError)
def store_error(error):
    logger.error(f"Database error on {request.method} {request.path}: {str(error)}")
    logger.error(traceback.format_exc())
    if request.path.startswith("/api/"):
        return jsonify({"error": "Database unavailable"}), 500
    return render_template("error.html", status=500, message="We couldn't reach your journal. Please try again."), 500


# Health Check
@bp.route('/healthz')
def health():
    try:
        get_store().ping()
        return jsonify({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": "connected",
        })
    except StoreError as e:
        return jsonify({
            "status": "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "error": str(e)
        }), 503


@bp.route("/")
def home():
    if current_user.is_authenticated:
        return redirect(url_for("journal.posts"))
    return render_template("home.html", google_enabled=get_oauth_client().is_configured)


@bp.route("/auth/google")
def auth_google():
    client = get_oauth_client()
    if not client.is_configured:
        logger.warning("Google sign-in requested but GOOGLE_CLIENT_ID/SECRET are not set")
        return redirect(url_for("journal.login"))

    state = secrets.token_urlsafe(16)
    session["oauth_state"] = state
    return redirect(client.authorization_url(state))


@bp.route("/auth/google/secrets")
def auth_google_callback():
    expected_state = session.pop("oauth_state", None)
    code = request.args.get("code")

    if request.args.get("error") or not code:
        logger.warning(f"Google sign-in aborted: {request.args.get('error', 'no code')}")
        return redirect(url_for("journal.login"))
    if not expected_state or request.args.get("state") != expected_state:
        logger.warning("Google sign-in state mismatch")
        return redirect(url_for("journal.login"))

    try:
        profile = get_oauth_client().fetch_profile(code)
    except OAuthError as e:
        logger.warning(f"Google sign-in failed: {str(e)}")
        return redirect(url_for("journal.login"))

    user = get_store().find_or_create_google_user(profile.id, profile.first_name, profile.last_name)
    login_user(user)
    logger.info(f"Google user {profile.id} logged in")
    return redirect(url_for("journal.posts"))


@bp.route("/login", methods=["GET"])
def login():
    return render_template("login.html", error=False, google_enabled=get_oauth_client().is_configured)


@bp.route("/register", methods=["GET"])
def register():
    return render_template("register.html", error=False)


@bp.route("/posts")
@login_required
def posts():
    return render_template("posts.html", postList=current_user.posts, name=current_user.display_name)


@bp.route("/logout")
@login_required
def logout():
    logout_user()
    session.clear()
    return redirect(url_for("journal.home"))


@bp.route("/register", methods=["POST"])
def register_submit():
    form = request.form
    try:
        user = register_local_user(
            get_store(),
            form.get("username"),
            form.get("password"),
            first_name=form.get("firstName"),
            last_name=form.get("lastName"),
        )
    except DuplicateUserError:
        logger.info(f"Registration rejected, username taken: {form.get('username')}")
        return render_template("register.html", error=True), 409
    except RegistrationError as e:
        logger.info(f"Registration rejected: {str(e)}")
        return redirect(url_for("journal.register"))

    login_user(user)
    return redirect(url_for("journal.posts"))


@bp.route("/login", methods=["POST"])
def login_submit():
    user = authenticate_local(get_store(), request.form.get("username"), request.form.get("password"))
    if user is None:
        return render_template("login.html", error=True, google_enabled=get_oauth_client().is_configured), 401
    login_user(user)
    return redirect(url_for("journal.posts"))


@bp.route("/compose", methods=["GET"])
@login_required
def compose():
    return render_template("compose.html", error=False, errors=[])


@bp.route("/compose", methods=["POST"])
@login_required
def compose_submit():
    errors, clean_data = validate_post_input(request.form)
    if errors:
        return render_template("compose.html", error=True, errors=errors, body=request.form.get("postBody", "")), 400

    scorer = get_scorer()
    result = scorer.analyze(clean_data["body"])
    logger.debug(f"Tokens: {result.tokens}")

    post = new_post(clean_data["body"], clean_data["date"], result.comparative)
    try:
        added = get_store().append_post(current_user.id, post)
    except StoreError as e:
        logger.error(f"Error adding post for user {current_user.id}: {str(e)}")
        abort(500)
    if not added:
        logger.error(f"User {current_user.id} disappeared before their post was saved")
        abort(500)

    logger.info(f"Added post {post.id} for user {current_user.id}, score {post.score:.3f}")
    return redirect(url_for("journal.posts"))


@bp.route("/posts/<post_id>")
@login_required
def show_post(post_id):
    post = get_store().find_post(current_user.id, post_id)
    if post is None:
        abort(404)
    return render_template("post.html", post=post)


@bp.route("/insights")
@login_required
def insights():
    user = get_store().get_by_id(current_user.id)
    if user is None:
        abort(404)

    summary = summarize(user.posts)
    return render_template(
        "insights.html",
        name=user.display_name,
        posts=user.posts,
        summary=summary,
        average=summary.average,
        mostPositive=summary.most_positive,
        mostNegative=summary.most_negative,
        data=json.dumps(summary.chart),
    )


@bp.route("/api/insights")
@login_required
def api_insights():
    user = get_store().get_by_id(current_user.id)
    if user is None:
        abort(404)
    return jsonify({"success": True, **summarize(user.posts).to_dict()}), 200


def create_app(overrides=None, store=None, scorer=None, oauth_client=None):
    """
    Build the application.

    The database, sentiment scorer and Google client are created here and kept
    on ``app.extensions``; tests hand in their own through the keyword args.

    When the app opens its own database the user indexes are created before
    anything else, and a ``StoreError`` aborts start-up: usernames and Google
    ids are only unique while those indexes exist.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    if app.config["SECRET_KEY"] == "change-me" and not app.config.get("TESTING"):
        logger.warning("SECRET_KEY is not set; sessions are signed with the default key")

    CORS(app, resources={r"/api/*": {"origins": "*"}})

    if store is None:
        mongo = PyMongo(app)
        store = UserStore(mongo.db)
        setup_database(store)
    app.extensions["journal_store"] = store
    app.extensions["journal_scorer"] = scorer or ComparativeScorer()
    app.extensions["journal_oauth"] = oauth_client or GoogleOAuthClient(
        app.config["GOOGLE_CLIENT_ID"],
        app.config["GOOGLE_CLIENT_SECRET"],
        app.config["GOOGLE_CALLBACK_URL"],
    )
    if not app.extensions["journal_oauth"].is_configured:
        logger.warning("Google OAuth client not configured. Google sign-in is disabled.")

    app.jinja_env.filters["date_label"] = date_label

    login_manager.init_app(app)
    app.register_blueprint(bp)
    return app


def setup_database(store):
    try:
        store.setup_indexes()
    except StoreError as e:
        logger.error(f"Error setting up database, refusing to start: {str(e)}")
        raise


if __name__ == '__main__':
    app = create_app()
    app.run(debug=app.config["DEBUG"], port=app.config["PORT"])
