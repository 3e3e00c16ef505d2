"""Tests for campaign domain models and input validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from civicsync.domain.models import (
    Campaign,
    CampaignCreateInput,
    CampaignSearchInput,
    CampaignStatus,
    CampaignUpdateInput,
    NearbyInput,
    UpdateType,
    VoteInput,
    VoteType,
)


class TestCampaign:
    """Campaign entity model."""

    def test_defaults(self) -> None:
        campaign = Campaign(id="c-1", title="Park cleanup")
        assert campaign.status is CampaignStatus.DRAFT
        assert campaign.vote_count == 0
        assert campaign.description == ""

    def test_frozen(self) -> None:
        campaign = Campaign(id="c-1", title="Park cleanup")
        with pytest.raises(ValidationError):
            campaign.vote_count = 5  # type: ignore[misc]

    def test_model_copy_leaves_original(self) -> None:
        campaign = Campaign(id="c-1", title="Park cleanup", vote_count=10)
        updated = campaign.model_copy(update={"vote_count": 11})
        assert campaign.vote_count == 10
        assert updated.vote_count == 11

    def test_unknown_columns_ignored(self) -> None:
        campaign = Campaign.model_validate(
            {"id": "c-1", "title": "Park cleanup", "search_vector": "'park':1"},
        )
        assert not hasattr(campaign, "search_vector")

    def test_negative_counts_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Campaign(id="c-1", title="x", vote_count=-1)


class TestCampaignCreateInput:
    """campaigns.create input."""

    def test_valid(self) -> None:
        data = CampaignCreateInput(
            title="  Plant trees  ",
            description="Plant fifty trees along the river walk.",
        )
        assert data.title == "Plant trees"
        assert data.status is CampaignStatus.DRAFT

    def test_short_description_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CampaignCreateInput(title="Trees", description="short")

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CampaignCreateInput(
                title="Trees",
                description="Plant fifty trees along the river walk.",
                priority="high",
            )


class TestCampaignUpdateInput:
    """Update type inference."""

    @pytest.mark.parametrize(
        ("fields", "expected"),
        [
            ({"status": CampaignStatus.ACTIVE}, UpdateType.STATUS),
            ({"title": "New title"}, UpdateType.CONTENT),
            ({"city": "Chicago"}, UpdateType.LOCATION),
            ({"title": "New title", "city": "Chicago"}, UpdateType.ALL),
            ({}, UpdateType.ALL),
        ],
    )
    def test_inferred_update_type(self, fields: dict, expected: UpdateType) -> None:
        assert CampaignUpdateInput(id="c-1", **fields).update_type is expected

    def test_explicit_update_type_kept(self) -> None:
        data = CampaignUpdateInput(id="c-1", title="x", update_type=UpdateType.STATUS)
        assert data.update_type is UpdateType.STATUS

    def test_changes(self) -> None:
        data = CampaignUpdateInput(id="c-1", title="New title", city="Chicago")
        assert data.changes() == {"title": "New title", "city": "Chicago"}


class TestQueryInputs:
    """Query input limits."""

    def test_search_default_limit(self) -> None:
        assert CampaignSearchInput().limit == 20

    def test_search_limit_cap(self) -> None:
        with pytest.raises(ValidationError):
            CampaignSearchInput(limit=101)

    def test_nearby_requires_coordinates(self) -> None:
        with pytest.raises(ValidationError):
            NearbyInput(latitude=39.7)  # type: ignore[call-arg]
        assert NearbyInput(latitude=39.7, longitude=-89.6).limit == 10

    def test_vote_type_coerced(self) -> None:
        assert VoteInput(campaign_id="c-1", vote_type="OPPOSE").vote_type is VoteType.OPPOSE
