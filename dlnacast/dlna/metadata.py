from __future__ import annotations

import posixpath
from dataclasses import dataclass
from urllib.parse import unquote, urlparse
from xml.sax.saxutils import escape, quoteattr

from ..settings import settings

WILDCARD_MEDIA_TYPE = "*"

DIDL_FMT = (
    '<DIDL-Lite xmlns="urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/" '
    'xmlns:dc="http://purl.org/dc/elements/1.1/" '
    'xmlns:upnp="urn:schemas-upnp-org:metadata-1-0/upnp/" '
    'xmlns:dlna="urn:schemas-dlna-org:metadata-1-0/" '
    'xmlns:sec="http://www.sec.co.kr/" '
    'xmlns:pv="http://www.pv.com/pvns/">'
    '<item id="0" parentID="-1" restricted="1">'
    "<dc:title>{title}</dc:title>"
    "<upnp:class>object.item.videoItem</upnp:class>"
    "<res protocolInfo={protocol_info}{subtitle_attrs}>{url}</res>"
    "{captions}"
    "</item></DIDL-Lite>"
)

CAPTION_FMT = (
    "<sec:CaptionInfoEx sec:type={type}>{url}</sec:CaptionInfoEx>"
    "<sec:CaptionInfo sec:type={type}>{url}</sec:CaptionInfo>"
)


def media_type_from_url(url: str) -> str:
    """Lowercase file extension of the URL path, e.g. ``mkv``."""
    path = unquote(urlparse(url).path)
    extension = posixpath.splitext(posixpath.basename(path))[1]
    return extension.lstrip(".").lower() or WILDCARD_MEDIA_TYPE


def title_from_url(url: str) -> str:
    path = unquote(urlparse(url).path)
    return posixpath.basename(path.rstrip("/")) or url


@dataclass(frozen=True)
class MediaSource:
    url: str
    mime_type: str
    title: str = ""
    subtitle_url: str | None = None
    subtitle_type: str | None = None

    @classmethod
    def from_url(
        cls,
        url: str,
        title: str | None = None,
        subtitle_url: str | None = None,
        subtitle_type: str | None = None,
    ) -> MediaSource:
        if subtitle_url is not None and subtitle_type is None:
            subtitle_type = media_type_from_url(subtitle_url)
        return cls(
            url=url,
            mime_type=media_type_from_url(url),
            title=title or title_from_url(url),
            subtitle_url=subtitle_url,
            subtitle_type=subtitle_type,
        )

    @property
    def protocol_info(self) -> str:
        return f"http-get:*:video/{self.mime_type}:*"

    def subtitle(self) -> tuple[str, str] | None:
        if self.subtitle_url:
            return self.subtitle_url, self.subtitle_type or self.mime_type
        if settings.subtitle_fallback:
            # no subtitle given: the renderer is pointed at the video itself
            return self.url, self.mime_type
        return None


def build_metadata(media: MediaSource) -> str:
    """DIDL-Lite item for ``CurrentURIMetaData``; values inside are escaped."""
    subtitle_attrs = ""
    captions = ""
    if (subtitle := media.subtitle()) is not None:
        subtitle_url, subtitle_type = subtitle
        subtitle_attrs = " pv:subtitleFileUri={} pv:subtitleFileType={}".format(
            quoteattr(subtitle_url), quoteattr(subtitle_type)
        )
        captions = CAPTION_FMT.format(
            type=quoteattr(subtitle_type), url=escape(subtitle_url)
        )

    return DIDL_FMT.format(
        title=escape(media.title or media.url),
        protocol_info=quoteattr(media.protocol_info),
        subtitle_attrs=subtitle_attrs,
        url=escape(media.url),
        captions=captions,
    )
