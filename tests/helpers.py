BOUNDARY = "postboard-test-boundary"


def encode_multipart(fields, boundary: str = BOUNDARY) -> bytes:
    """Build a multipart/form-data body from ``(name, filename, payload)`` triples."""
    body = bytearray()
    for name, filename, payload in fields:
        body += f"--{boundary}\r\n".encode()
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        body += f"Content-Disposition: {disposition}\r\n".encode()
        if filename is not None:
            body += b"Content-Type: application/octet-stream\r\n"
        body += b"\r\n" + payload + b"\r\n"
    body += f"--{boundary}--\r\n".encode()
    return bytes(body)


async def chunked(data: bytes, size: int):
    for index in range(0, len(data), size):
        yield data[index:index + size]
