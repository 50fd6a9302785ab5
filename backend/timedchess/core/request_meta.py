def extract_client_ip_from_environ(environ: dict) -> str:
    """Best-effort client address of a Socket.IO handshake, proxy headers first."""
    forwarded_for = environ.get("HTTP_X_FORWARDED_FOR", "")
    if isinstance(forwarded_for, str) and forwarded_for.strip():
        return forwarded_for.split(",")[0].strip()
    for key in ("HTTP_X_REAL_IP", "REMOTE_ADDR"):
        candidate = environ.get(key, "")
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return "unknown"
