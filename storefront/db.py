import logging
from datetime import datetime

from bson import ObjectId
from bson.errors import InvalidId
from flask import current_app
from pymongo import MongoClient, ReturnDocument


def init_mongo(app):
    """Build the single MongoClient for this app and attach the database handle.

    Tests pass a ready-made handle through ``MONGO_DB`` in the config dict.
    """
    db = app.config.get('MONGO_DB')
    if db is None:
        # MongoClient connects lazily; the first query surfaces connection errors
        client = MongoClient(app.config['MONGODB_URI'])
        db = client[app.config['MONGODB_DBNAME']]
        app.extensions['mongo_client'] = client
        logging.info(f"MongoDB client configured for database: {app.config['MONGODB_DBNAME']}")
    app.extensions['mongo_db'] = db
    return db


def get_db():
    return current_app.extensions['mongo_db']


def next_sequence(db, name):
    """Atomically increment and return the named counter."""
    counter = db.counters.find_one_and_update(
        {'_id': name},
        {'$inc': {'seq': 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(counter['seq'])


def to_object_id(value):
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_doc(doc):
    """Make a Mongo document JSON friendly: ``_id`` becomes ``id`` unless one exists."""
    if not doc:
        return doc
    d = dict(doc)
    if '_id' in d:
        oid = d.pop('_id')
        if 'id' not in d:
            d['id'] = str(oid)
    for k, v in list(d.items()):
        d[k] = _jsonable(v)
    return d


def _jsonable(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value
