# celery -A make_celery worker --loglevel INFO
# celery -A make_celery beat --loglevel INFO
from roombook import create_app
from roombook.config import ProductionConfig

flask_app = create_app(ProductionConfig)
celery_app = flask_app.extensions['celery']
