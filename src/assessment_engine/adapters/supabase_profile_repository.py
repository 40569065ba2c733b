"""Supabase-backed owner profiles and attempt quota."""

from dataclasses import dataclass

from supabase import Client

from assessment_engine.domain.models import ProfileRecord
from assessment_engine.retry import retry_storage
from assessment_engine.services.assessment import ProfileRepository


@dataclass
class SupabaseProfileRepository(ProfileRepository):
    """Supabase implementation for profiles."""

    client: Client
    max_attempts: int = 3

    def get_profile(self, owner_id: str) -> ProfileRecord | None:
        """Return the owner's profile, if present."""
        response = retry_storage(
            lambda: self.client.table("profiles")
            .select("owner_id, tests_remaining, tests_taken")
            .eq("owner_id", owner_id)
            .limit(1)
            .execute(),
            attempts=self.max_attempts,
            label="get_profile",
        )
        if not response.data:
            return None
        row = response.data[0]
        return ProfileRecord(
            owner_id=str(row["owner_id"]),
            tests_remaining=int(row.get("tests_remaining") or 0),
            tests_taken=int(row.get("tests_taken") or 0),
        )

    def consume_attempt(self, owner_id: str) -> bool:
        """Decrement the remaining attempts if the count is unchanged since read."""
        profile = self.get_profile(owner_id)
        if profile is None or profile.tests_remaining <= 0:
            return False
        response = retry_storage(
            lambda: self.client.table("profiles")
            .update(
                {
                    "tests_remaining": profile.tests_remaining - 1,
                    "tests_taken": profile.tests_taken + 1,
                }
            )
            .eq("owner_id", owner_id)
            .eq("tests_remaining", profile.tests_remaining)
            .execute(),
            attempts=self.max_attempts,
            label="consume_attempt",
        )
        return bool(response.data)
