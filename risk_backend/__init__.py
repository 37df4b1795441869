# MySQL deployments load the static assessment tables through PyMySQL when the
# native mysqlclient driver is absent.
try:
    import MySQLdb  # type: ignore  # noqa: F401
except ImportError:
    try:
        import pymysql  # type: ignore

        pymysql.install_as_MySQLdb()
    except ImportError:
        # Only MySQL-backed databases need a driver; SQLite works without one.
        pass
