from flask import Blueprint, current_app, jsonify

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'status': 'ok', 'message': 'Welcome to the quiz room server!'})


@main.route('/health')
def health():
    store = current_app.extensions['quizroom'].store
    return jsonify({'status': 'healthy', 'rooms': len(store)})
