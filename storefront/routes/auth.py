import logging
from functools import wraps

from firebase_admin import auth, get_app
from flask import Blueprint, current_app, jsonify, request, session

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def verify_token(id_token):
    firebase_app = get_app(name='default')
    return auth.verify_id_token(id_token, app=firebase_app)


def is_admin(decoded_token):
    if decoded_token.get('admin'):
        return True
    email = (decoded_token.get('email') or '').lower()
    return bool(email) and email in current_app.config.get('ADMIN_EMAILS', [])


# Decorator for back-office routes: a verified Firebase token with admin rights
def admin_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        id_token = session.get('id_token')
        header = request.headers.get('Authorization', '')
        if header.startswith('Bearer '):
            id_token = header[len('Bearer '):]
        if not id_token:
            return jsonify({"error": "Authentication required"}), 401
        try:
            decoded_token = verify_token(id_token)
        except Exception as e:
            logging.warning(f"[AUTH] Token rejected: {e}")
            return jsonify({"error": "Invalid or expired session"}), 401
        if not is_admin(decoded_token):
            logging.warning(f"[AUTH] Non-admin access attempt | email={decoded_token.get('email')}")
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function


# Login route (verify token from client-side sign-in)
@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    id_token = data.get('id_token')
    if not id_token:
        logging.error("[AUTH] No id_token in request to /auth/login")
        return jsonify({"error": "Missing id_token"}), 400
    try:
        decoded_token = verify_token(id_token)
    except Exception as e:
        logging.error(f"[AUTH] Error in /auth/login: {str(e)}", exc_info=True)
        return jsonify({"error": "Invalid credentials"}), 401
    session['id_token'] = id_token
    session['user_email'] = decoded_token.get('email')
    logging.info(f"[AUTH] Firebase token verified | uid={decoded_token['uid']}, email={decoded_token.get('email')}")
    return jsonify({
        "message": "Login successful",
        "uid": decoded_token['uid'],
        "is_admin": is_admin(decoded_token),
    }), 200


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.pop('id_token', None)
    session.pop('user_email', None)
    return jsonify({"message": "Logout successful"}), 200
