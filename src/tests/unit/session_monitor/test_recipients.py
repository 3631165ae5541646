"""Tests for alert recipient resolution."""

from uuid import uuid4

from session_monitor.services.recipients import RecipientResolver, RecipientSource


class TestRecipientResolver:
    """Fallback chain, first match wins."""

    async def test_designated_admin_profile_first(self, make_tenant, session_factory):
        tenant = await make_tenant(
            contact_email="contact@acme.example",
            profiles=[
                {"email": "owner@acme.example", "role": "owner"},
                {"email": "desk@acme.example", "role": "agent"},
            ],
            admin_profile_index=1,
        )

        async with session_factory() as db:
            recipient = await RecipientResolver("ops@platform.example").resolve(db, tenant.id)

        assert recipient.email == "desk@acme.example"
        assert recipient.source == RecipientSource.ADMIN_PROFILE
        assert recipient.tenant_name == "Acme Clinic"

    async def test_contact_email_when_admin_profile_has_no_email(
        self, make_tenant, session_factory
    ):
        tenant = await make_tenant(
            contact_email="contact@acme.example",
            profiles=[{"email": None, "role": "owner"}],
            admin_profile_index=0,
        )

        async with session_factory() as db:
            recipient = await RecipientResolver().resolve(db, tenant.id)

        assert recipient.email == "contact@acme.example"
        assert recipient.source == RecipientSource.CONTACT_EMAIL

    async def test_admin_role_profile(self, make_tenant, session_factory):
        tenant = await make_tenant(
            contact_email="  ",
            profiles=[
                {"email": "agent@acme.example", "role": "agent"},
                {"email": "admin@acme.example", "role": "admin"},
                {"email": "owner@acme.example", "role": "owner"},
            ],
        )

        async with session_factory() as db:
            recipient = await RecipientResolver().resolve(db, tenant.id)

        # Oldest administrative profile
        assert recipient.email == "admin@acme.example"
        assert recipient.source == RecipientSource.ADMIN_ROLE

    async def test_operator_fallback(self, make_tenant, session_factory):
        tenant = await make_tenant(
            contact_email=None, profiles=[{"email": "agent@acme.example", "role": "agent"}]
        )

        async with session_factory() as db:
            recipient = await RecipientResolver("ops@platform.example").resolve(db, tenant.id)

        assert recipient.email == "ops@platform.example"
        assert recipient.source == RecipientSource.OPERATOR
        assert recipient.tenant_name == "Acme Clinic"

    async def test_nothing_resolves(self, make_tenant, session_factory):
        tenant = await make_tenant(contact_email=None)

        async with session_factory() as db:
            assert await RecipientResolver(None).resolve(db, tenant.id) is None

    async def test_unknown_tenant_uses_operator(self, session_factory):
        async with session_factory() as db:
            recipient = await RecipientResolver("ops@platform.example").resolve(db, uuid4())

        assert recipient.source == RecipientSource.OPERATOR
        assert recipient.tenant_name is None
