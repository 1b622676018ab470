# asset_tracker/routes/auth.py
from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from asset_tracker.routes import json_body
from asset_tracker.services.auth import AuthService

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')
auth = AuthService()


def _client():
    return request.remote_addr, request.headers.get('User-Agent')


@auth_bp.route('/register', methods=['POST'])
def register():
    user = auth.register(json_body())
    return jsonify({'message': 'User registered successfully', 'user': user.to_dict()}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = json_body()
    ip_address, user_agent = _client()
    result = auth.login(data.get('email'), data.get('password'), data.get('mfa_code'),
                        ip_address=ip_address, user_agent=user_agent)
    return jsonify(result)


@auth_bp.route('/refresh', methods=['POST'])
def refresh():
    ip_address, user_agent = _client()
    return jsonify(auth.refresh(json_body().get('refresh_token'), ip_address, user_agent))


@auth_bp.route('/logout', methods=['POST'])
def logout():
    return jsonify(auth.logout(json_body().get('refresh_token')))


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify(current_user.to_dict())


@auth_bp.route('/mfa/setup', methods=['POST'])
@login_required
def mfa_setup():
    return jsonify(auth.setup_mfa(current_user))


@auth_bp.route('/mfa/verify', methods=['POST'])
@login_required
def mfa_verify():
    return jsonify(auth.verify_mfa(current_user, json_body().get('code')))


@auth_bp.route('/mfa/disable', methods=['POST'])
@login_required
def mfa_disable():
    return jsonify(auth.disable_mfa(current_user, json_body().get('code')))
