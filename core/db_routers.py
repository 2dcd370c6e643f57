"""
Route reads to the optional ``replica`` database.

Enabled from settings when ``DB_REPLICA_URL`` is set.  Writes, and
reads inside the same request that need fresh data (``select_for_update``
runs in a transaction on the default connection), always go to
``default``.
"""
from django.conf import settings


class ReadReplicaRouter:
    def db_for_read(self, model, **hints):
        if 'replica' in settings.DATABASES:
            return 'replica'
        return 'default'

    def db_for_write(self, model, **hints):
        return 'default'

    def allow_relation(self, obj1, obj2, **hints):
        return True

    def allow_migrate(self, db, app_label, model_name=None, **hints):
        return db == 'default'
