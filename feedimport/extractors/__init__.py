"""Extraction sub-package: payload decoding, HTML asset rewriting and Markdown conversion."""

from .dates import parse_date, to_readable_date
from .feed import as_list, parse_xml
from .html_rewriter import HtmlAssetRewriter
from .markdown import MarkdownDowngrader
from .urlnorm import is_http_url, parse_srcset

__all__ = [
    "as_list",
    "is_http_url",
    "parse_date",
    "parse_srcset",
    "parse_xml",
    "to_readable_date",
    "HtmlAssetRewriter",
    "MarkdownDowngrader",
]
