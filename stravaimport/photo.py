"""Activity photos: downloaded to local media storage and indexed in the DB."""

import logging
from pathlib import Path
from typing import Any

import requests
from peewee import CharField, Model, TextField
from werkzeug.utils import secure_filename

from stravaimport.activity_id import ActivityId
from stravaimport.db import db

log = logging.getLogger(__name__)

_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/gif": "gif", "image/webp": "webp"}


class ActivityPhoto(Model):
    photo_id = CharField(max_length=128, primary_key=True)
    activity_id = CharField(max_length=64, index=True)
    caption = TextField(null=True)
    source_url = TextField()
    file_path = CharField(max_length=512)

    class Meta:
        database = db
        table_name = "activity_photo"


def _largest_url(urls: dict[str, str] | None) -> str | None:
    """Strava keys photo URLs by pixel size ("100", "5000", ...); take the biggest."""
    if not urls:
        return None
    try:
        size = max(urls, key=lambda k: int(k))
    except (TypeError, ValueError):
        size = next(iter(urls))
    return urls[size]


class PhotoStore:
    """Downloads each photo and records where it was written.

    All photos of an activity are fetched before anything is written, so a
    failed download leaves both the media folder and the stored rows as the
    previous import left them.
    """

    def __init__(self, media_root: str | Path = "media", timeout: float = 30, session: requests.Session | None = None):
        self.media_root = Path(media_root)
        self.timeout = timeout
        self.session = session or requests.Session()

    def _fetch(self, url: str) -> tuple[bytes, str]:
        """Return the image bytes and the file extension for its content type."""
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        content_type = response.headers.get("Content-Type", "").split(";")[0].strip()
        return response.content, _EXTENSIONS.get(content_type, "jpg")

    def save(self, activity_id: ActivityId, photos: list[dict[str, Any]], output) -> None:
        key = str(activity_id)
        downloads = []
        for photo in photos or []:
            photo_id = str(photo.get("unique_id") or photo.get("id") or "")
            # The id comes from Strava; never let it pick a path outside the activity folder.
            file_stem = secure_filename(photo_id)
            url = _largest_url(photo.get("urls"))
            if not file_stem or not url:
                log.debug("Skipping photo without usable id or url for %s: %s", activity_id, photo)
                continue
            if file_stem != photo_id:
                log.warning(
                    "Photo id %r of %s is not a safe file name, storing as %r", photo_id, activity_id, file_stem
                )
            content, extension = self._fetch(url)
            downloads.append((photo, photo_id, url, f"{file_stem}.{extension}", content))

        rows = []
        if downloads:
            folder = self.media_root / "activities" / activity_id.to_unprefixed_string()
            folder.mkdir(parents=True, exist_ok=True)
            for photo, photo_id, url, file_name, content in downloads:
                path = folder / file_name
                path.write_bytes(content)
                rows.append(
                    {
                        "photo_id": photo_id,
                        "activity_id": key,
                        "caption": photo.get("caption"),
                        "source_url": url,
                        "file_path": str(path),
                    }
                )

        with db.atomic():
            ActivityPhoto.delete().where(ActivityPhoto.activity_id == key).execute()
            if rows:
                ActivityPhoto.insert_many(rows).execute()

        output.writeln(f"  => Downloaded {len(rows)} photo(s) for {activity_id}")
