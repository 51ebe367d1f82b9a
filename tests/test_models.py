"""Tests for request validation, contact normalization and enum coercion."""

import pytest
from pydantic import ValidationError

from constants import ContactMethod, Gender, Level
from models import BookingCreate, ProfileUpdate, QueueReorder, SignUpRequest, normalize_contact


class TestNormalizeContact:
    def test_email_is_lowercased(self):
        assert normalize_contact("  Ana@Example.COM ", ContactMethod.EMAIL) == "ana@example.com"

    @pytest.mark.parametrize("value", ["ana", "ana@", "ana@example", "a b@example.com", ""])
    def test_bad_email(self, value):
        with pytest.raises(ValueError):
            normalize_contact(value, ContactMethod.EMAIL)

    def test_phone_strips_formatting(self):
        assert normalize_contact("+55 (11) 98765-4321", ContactMethod.PHONE) == "+5511987654321"

    @pytest.mark.parametrize("value", ["123", "phone", "+55 11 9876-ABCD"])
    def test_bad_phone(self, value):
        with pytest.raises(ValueError):
            normalize_contact(value, ContactMethod.PHONE)


class TestCoerce:
    def test_level(self):
        assert Level.coerce("Avancado") == Level.AVANCADO
        assert Level.coerce(None) == Level.NOT_INFORMED
        assert Level.coerce("expert") == Level.NOT_INFORMED
        assert Level.coerce(Level.INICIANTE) is Level.INICIANTE

    def test_gender(self):
        assert Gender.coerce("misto") == Gender.MISTO
        assert Gender.coerce("não informado") == Gender.NOT_INFORMED
        assert Gender.coerce("other") == Gender.NOT_INFORMED


class TestBookingCreate:
    def test_partner_attributes_dropped_without_partner(self):
        request = BookingCreate(player2_name="  ", player2_level="avancado", player2_team="feminino")
        assert request.player2_name is None
        assert request.player2_level is None
        assert request.player2_team is None

    def test_names_are_trimmed(self):
        request = BookingCreate(player1_name=" Ana ", player2_name=" Bia ", player2_level="iniciante")
        assert request.player1_name == "Ana"
        assert request.player2_name == "Bia"
        assert request.player2_level == Level.INICIANTE

    def test_unknown_level_rejected(self):
        with pytest.raises(ValidationError):
            BookingCreate(player1_level="expert")


class TestOtherRequests:
    def test_signup_blank_name(self):
        with pytest.raises(ValidationError):
            SignUpRequest(name="   ", contact="ana@example.com")

    def test_reorder_rejects_repeats(self):
        with pytest.raises(ValidationError):
            QueueReorder(user_ids=["u1", "u1"])

    @pytest.mark.parametrize("field", ["gender", "level"])
    def test_profile_rejects_not_informed(self, field):
        with pytest.raises(ValidationError):
            SignUpRequest(name="Ana", contact="ana@example.com", **{field: "não informado"})
        with pytest.raises(ValidationError):
            ProfileUpdate(name="Ana", contact="ana@example.com", **{field: "não informado"})

    def test_profile_accepts_misto(self):
        request = ProfileUpdate(name="Ana", contact="ana@example.com", gender="misto", level="iniciante")
        assert request.gender == Gender.MISTO
        assert request.level == Level.INICIANTE
