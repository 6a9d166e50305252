# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/voltshop/routes/auth.py
"""
Authentication API routes

- Registration creates customer accounts only; admins come from the CLI.
- Login returns a bearer token for the Authorization header.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import auth_service, session_service
from ..validation import parse_json_object

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    data = parse_json_object(request.get_json(silent=True))

    user = auth_service.create_user(
        username=data.get("username") or data.get("email"),
        email=data.get("email"),
        password=data.get("password"),
        role="customer",
        name=data.get("name"),
        phone=data.get("phone"),
        location=data.get("location"),
    )
    _, token = session_service.create_session(
        user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    current_app.logger.info("Customer account %s registered", user.id)
    return jsonify({"success": True, "user": user.to_dict(), "token": token}), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in the Authorization header for protected routes.
    """
    data = parse_json_object(request.get_json(silent=True))
    username = data.get("username") or data.get("email")
    password = data.get("password")

    if not all([username, password]):
        return jsonify({"success": False, "message": "username/email and password required"}), 400

    user = auth_service.authenticate(username, password)
    if not user:
        current_app.logger.warning("Failed login for %s from %s", username, request.remote_addr)
        return jsonify({"success": False, "message": "Invalid credentials"}), 401

    session, token = session_service.create_session(
        user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify({
        "success": True,
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
    })


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return jsonify({"success": True, "message": "Logged out"})


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"success": True, "user": g.current_user.to_dict()})
