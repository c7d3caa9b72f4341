"""fieldcapture.integrations: External service gateway modules.

All outbound calls to external services must go through a gateway in this
package, never via bare `requests` calls in services or blueprints.

Current gateways:
  blob_store         : photo object storage (HTTP or in-memory)
  extraction_gateway : image → structured data extraction service
"""
