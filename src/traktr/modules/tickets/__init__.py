"""Traktr Tickets Module - daily work tickets filed by employees against company jobs."""
