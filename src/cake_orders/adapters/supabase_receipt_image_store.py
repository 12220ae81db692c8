"""Supabase Storage bucket for receipt images."""

from dataclasses import dataclass

from supabase import Client

from cake_orders.services.receipts import ImageStore


@dataclass
class SupabaseReceiptImageStore(ImageStore):
    """Stores receipt images in a private Supabase Storage bucket."""

    client: Client
    bucket: str

    def save(self, path: str, content: bytes, content_type: str) -> str:
        """Upload the image and return ``<bucket>/<path>``."""
        self.client.storage.from_(self.bucket).upload(
            path, content, {"content-type": content_type}
        )
        return f"{self.bucket}/{path}"

    def delete(self, path: str) -> None:
        """Remove an image from the bucket."""
        self.client.storage.from_(self.bucket).remove([path])
