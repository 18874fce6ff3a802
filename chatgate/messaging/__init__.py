"""Outbound operations, identity resolution and message parsing."""
from chatgate.messaging.parse import MessageType, ParsedMessage, format_for_log, parse_message
from chatgate.messaging.identity import (
    HOME_COUNTRY_CODE, Resolution, candidate_identities, number_variants, resolve_identity,
)
from chatgate.messaging.content import file_content, text_content
from chatgate.messaging.gateway import HumanizeSettings, OutboundGateway, SendResult, ValidatedNumber

__all__ = ["MessageType", "ParsedMessage", "format_for_log", "parse_message",
           "HOME_COUNTRY_CODE", "Resolution", "candidate_identities", "number_variants",
           "resolve_identity", "file_content", "text_content",
           "HumanizeSettings", "OutboundGateway", "SendResult", "ValidatedNumber"]
