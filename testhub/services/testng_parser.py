"""
TestNG Result Parser — extracts test-method executions from testng-results.xml.

The document is converted to a plain ``XmlElement`` tree and walked by a
recursive visitor. Any element carrying both ``name`` and ``status``
attributes counts as an execution, whatever its tag or depth, so report
layouts from different TestNG versions and custom reporters all work:

    <testng-results>
      <suite name="Smoke">
        <test name="Login">
          <class name="com.example.LoginTest">
            <test-method name="TC_7" status="PASS" duration-ms="1234"
                         started-at="2024-01-15T10:30:00 IST" is-config="false"/>

Timestamps go through the lenient date parser; anything it cannot read is
omitted rather than rejected.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from xml.etree import ElementTree as ET

from testhub.core.exceptions import XmlFormatError
from testhub.utils.dates import parse_datetime

logger = logging.getLogger(__name__)

_TAG = re.compile(r"<[^>]+>")


@dataclass(frozen=True)
class XmlElement:
    tag: str
    attributes: dict[str, str] = field(default_factory=dict)
    children: tuple["XmlElement", ...] = ()
    text: str = ""

    def find(self, tag: str) -> "XmlElement | None":
        """First descendant (depth-first) with the given tag."""
        for child in self.children:
            if child.tag == tag:
                return child
            found = child.find(tag)
            if found is not None:
                return found
        return None


@dataclass(frozen=True)
class ParsedTestExecution:
    method_name: str
    status: str
    is_config: bool = False
    duration_ms: int | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error_message: str | None = None


@dataclass
class ParsedTestNGReport:
    test_methods: list[ParsedTestExecution] = field(default_factory=list)

    @property
    def executions(self) -> list[ParsedTestExecution]:
        """Non-configuration executions only."""
        return [m for m in self.test_methods if not m.is_config]


def _local_name(tag: str) -> str:
    # "{namespace}test-method" -> "test-method"
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def _to_tree(node: ET.Element) -> XmlElement:
    return XmlElement(
        tag=_local_name(node.tag),
        attributes={_local_name(k): v for k, v in node.attrib.items()},
        children=tuple(_to_tree(child) for child in node),
        text=(node.text or "").strip(),
    )


def parse_xml_tree(xml_content: str) -> XmlElement:
    """Check the input looks like XML and convert it to an XmlElement tree.

    Raises:
        XmlFormatError: empty input, no tags at all, or a malformed document.
    """
    if not isinstance(xml_content, str) or not xml_content.strip():
        raise XmlFormatError("XML content is empty")
    if not _TAG.search(xml_content):
        raise XmlFormatError("Content does not look like XML: no tags found")
    try:
        root = ET.fromstring(xml_content.strip())
    except ET.ParseError as exc:
        raise XmlFormatError(f"Failed to parse XML: {exc}") from exc
    return _to_tree(root)


def _duration(raw: str | None) -> int | None:
    text = (raw or "").strip()
    # ASCII only: str.isdigit() also accepts superscripts that int() rejects
    if not (text.isascii() and text.isdigit()):
        return None
    return int(text)


def _error_message(element: XmlElement) -> str | None:
    exception = element.find("exception")
    if exception is None:
        return None
    message = exception.find("message")
    if message is not None and message.text:
        return message.text
    return exception.attributes.get("class") or None


def _to_execution(element: XmlElement) -> ParsedTestExecution:
    attrs = element.attributes
    return ParsedTestExecution(
        method_name=attrs["name"].strip(),
        status=attrs["status"].strip(),
        is_config=attrs.get("is-config", "").strip().lower() == "true",
        duration_ms=_duration(attrs.get("duration-ms")),
        started_at=parse_datetime(attrs.get("started-at")),
        finished_at=parse_datetime(attrs.get("finished-at")),
        error_message=_error_message(element),
    )


def _visit(element: XmlElement, found: list[ParsedTestExecution]) -> None:
    if "name" in element.attributes and "status" in element.attributes:
        found.append(_to_execution(element))
    for child in element.children:
        _visit(child, found)


def parse_testng_xml(xml_content: str) -> ParsedTestNGReport:
    """Parse TestNG result XML into executions, in document order."""
    tree = parse_xml_tree(xml_content)
    found: list[ParsedTestExecution] = []
    _visit(tree, found)
    report = ParsedTestNGReport(test_methods=found)
    logger.debug(
        "Parsed %d test-method executions (%d configuration)",
        len(found), len(found) - len(report.executions),
    )
    return report
