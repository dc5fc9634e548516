"""HTTP and event-stream gateway for a linked WhatsApp account."""
