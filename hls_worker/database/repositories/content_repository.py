import psycopg
from psycopg import sql

from hls_worker.database.connection import get_connection
from hls_worker.processor.exceptions import RecordUpdateError


class ContentRepository:
    """Writes rendition locations onto the content rows that reference a job.

    The same post can be mirrored into several projection tables; each one
    carries hls_path and hls_url columns keyed by the post id.
    """

    def __init__(self, tables: list[str]) -> None:
        if not tables:
            raise ValueError("at least one content table is required")
        self._tables = list(tables)

    def update_rendition(self, post_id: str, rendition_path: str, public_url: str) -> int:
        """Point every projection of the post at the published playlist.

        Returns the number of rows updated across all tables.

        Raises:
            RecordUpdateError: if any update fails at the database level.
        """
        updated = 0
        try:
            with get_connection() as conn:
                with conn.cursor() as cur:
                    for table in self._tables:
                        cur.execute(
                            sql.SQL(
                                """
                                UPDATE {table}
                                SET hls_path = %s, hls_url = %s, updated_at = NOW()
                                WHERE id = %s
                                """
                            ).format(table=sql.Identifier(table)),
                            (rendition_path, public_url, post_id),
                        )
                        updated += cur.rowcount
                conn.commit()
        except psycopg.Error as exc:
            raise RecordUpdateError(
                f"content record update for post {post_id} failed: {exc}"
            ) from exc
        return updated
