"""Unified Data Management: subscriber allowlist and AMF 3GPP access registration."""