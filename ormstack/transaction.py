import logging
from contextlib import contextmanager

from .exceptions import TransactionError

logger = logging.getLogger(__name__)


class TransactionManager:
    """Tracks the nesting depth of transactions opened on one connection.

    The outermost level commits or rolls back the driver connection; every
    deeper level is mapped onto a named SAVEPOINT.
    """

    def __init__(self, connection):
        self._connection = connection
        self._depth = 0

    @property
    def level(self) -> int:
        """0 outside any transaction"""
        return self._depth

    def _statement(self, sql):
        logger.debug(sql)
        cursor = self._connection.raw.cursor()
        try:
            cursor.execute(sql)
        finally:
            cursor.close()

    def _begin(self, depth):
        if depth > 1:
            self._statement(f"SAVEPOINT savepoint_{depth}")
            return
        begin = self._connection.dialect.BEGIN
        if begin and not getattr(self._connection.raw, "in_transaction", False):
            self._statement(begin)

    def _finish(self, depth, failed):
        raw = self._connection.raw
        if depth > 1:
            verb = "ROLLBACK TO SAVEPOINT" if failed else "RELEASE SAVEPOINT"
            self._statement(f"{verb} savepoint_{depth}")
        elif failed:
            logger.debug("ROLLBACK")
            raw.rollback()
        else:
            logger.debug("COMMIT")
            raw.commit()

    @contextmanager
    def transaction(self):
        """Open a (possibly nested) transaction and yield its handle.

        Leaving the block normally commits, or releases the savepoint when
        nested; an exception rolls back to the matching point and propagates.
        """
        self._depth += 1
        depth = self._depth
        handle = Transaction(self._connection, self, depth)
        try:
            self._begin(depth)
            yield handle
        except Exception:
            self._finish(depth, failed=True)
            raise
        else:
            self._finish(depth, failed=False)
        finally:
            handle._active = False
            self._depth = max(0, self._depth - 1)


class Transaction:
    """Handle for one transaction level, usable only while it is the innermost one."""

    def __init__(self, connection, manager, level):
        self._connection = connection
        self._manager = manager
        self._level = level
        self._active = True

    @property
    def connection(self):
        return self._connection

    def _ensure_usable(self):
        if not self._active:
            raise TransactionError("Transaction is no longer active")
        innermost = self._manager.level
        if innermost > self._level:
            raise TransactionError(
                f"Cannot use transaction level {self._level} from level {innermost}: "
                "an inner transaction is still open."
            )

    def run(self, exec_value):
        """Run `exec_value` on the connection, returning the driver cursor.

        Raises TransactionError once the block has exited, or while a nested
        transaction is open.
        """
        self._ensure_usable()
        return self._connection.run(exec_value)

    def q(self, model):
        self._ensure_usable()
        return self._connection.q(model)
