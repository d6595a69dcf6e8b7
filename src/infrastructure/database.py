from flask import current_app, g
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from werkzeug.local import LocalProxy

from qz_utils.logger_utils import logger


def get_db():
    """
    Returns a proxy to the MongoDB database.
    Uses Flask's application context to manage the connection.
    """
    if 'db' not in g:
        if 'mongo_client' not in current_app.extensions:
            current_app.extensions['mongo_client'] = MongoClient(current_app.config["MONGO_URI"], tz_aware=True)

        # The database name is expected to be part of the MONGO_URI
        # e.g., mongodb://host:port/dbname
        g.db = current_app.extensions['mongo_client'].get_database()

    return g.db


def ensure_indexes(database: Database) -> None:
    """Create the indexes the services rely on. Safe to call on every boot."""
    database.users.create_index("email", unique=True)
    database.questions.create_index([("quizId", ASCENDING), ("order", ASCENDING)])
    database.attempts.create_index([("userId", ASCENDING), ("startedAt", DESCENDING)])
    database.attempts.create_index("quizId")
    # At most one in-progress attempt per user and quiz
    database.attempts.create_index(
        [("userId", ASCENDING), ("quizId", ASCENDING)],
        unique=True,
        partialFilterExpression={"status": "in_progress"},
        name="one_in_progress_attempt",
    )
    logger.info("MongoDB indexes ensured")


def init_app(app):
    """Initialize the database with the Flask app."""
    # Close the database connection when the app context tears down
    @app.teardown_appcontext
    def close_db(exception):
        g.pop('db', None)
        # Note: We don't close the client here as it's shared via extensions


# Use a LocalProxy to access the db connection within the application context
db = LocalProxy(get_db)
