from flask import current_app, jsonify

from roombook.errors import BookingEngineError, PersistenceError


def register_error_handlers(blueprint):
    @blueprint.errorhandler(BookingEngineError)
    def handle_engine_error(e):
        if isinstance(e, PersistenceError):
            current_app.logger.error("Persistence failure: %s", e.message)
        return jsonify(e.to_dict()), e.status_code
