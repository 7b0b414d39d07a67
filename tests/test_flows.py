from unittest.mock import Mock

import pytest
from conftest import CUSTOMER, make_event

from stampbot.flows.base import FlowContext, is_valid_email, parse_amount
from stampbot.flows.incident import IncidentFlow
from stampbot.schemas.webhook import MediaInfo
from stampbot.services.actions import SendButtons, SendList
from stampbot.services.customer_service import CustomerService
from stampbot.services.gamification import GamificationService
from stampbot.services.llm import LLMResponse
from stampbot.services.record_store import RecordStoreError
from stampbot.services.state_service import ConversationStateStore
from stampbot.services.time_utils import local_today


def state_of(store):
    return ConversationStateStore(store).get_state(CUSTOMER)


def visits_of(store):
    return store.get_one("customers", {"customer_id": CUSTOMER})["number_of_visits"]


class TestParsing:
    @pytest.mark.parametrize(
        "raw, expected",
        [("R 120", 120.0), ("120.50", 120.5), ("1,200", 1200.0), ("1 200", 1200.0), ("r45", 45.0)],
    )
    def test_accepts_common_amount_formats(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", ["0", "-5", "abc", "R", "", "12.345", None])
    def test_rejects_invalid_amounts(self, raw):
        assert parse_amount(raw) is None

    def test_email_validation(self):
        assert is_valid_email("sam@shop.co.za")
        assert not is_valid_email("sam at shop")
        assert not is_valid_email("sam@shop")


class TestVisitCounter:
    def test_concurrent_stamp_is_not_lost(self, store):
        customers = CustomerService(store)
        customers.ensure_customer(CUSTOMER)
        read_customer = customers.get_customer
        raced = []

        def stale_read(customer_id):
            row = read_customer(customer_id)
            if not raced:
                raced.append(True)
                # Another invocation stamps after our read.
                store.update("customers", {"customer_id": customer_id}, {"number_of_visits": 1})
            return row

        customers.get_customer = stale_read

        assert customers.record_visit(CUSTOMER) == 2
        assert visits_of(store) == 2


class TestSignupFlow:
    def test_signup_hands_over_to_demo(self, send, store, gateway):
        send("SIGN UP")
        assert state_of(store).is_at("signup", 1)
        assert "Thandi" in gateway.texts()[0]

        send("Bean There Coffee")
        assert state_of(store).is_at("signup", 2)
        assert [b.id for b in gateway.actions[0].buttons] == ["drink_matcha", "drink_americano", "drink_cappuccino"]

        send(reply_id="drink_americano")
        assert state_of(store).is_at("demo", 1)
        assert gateway.images() == ["https://cards.test/card?stamps=0"]

        customer = store.get_one("customers", {"customer_id": CUSTOMER})
        assert customer["preferred_drink"] == "americano"
        assert store.get_one("signup_leads", {"customer_id": CUSTOMER})["business_name"] == "Bean There Coffee"

    def test_drink_reply_outside_signup_is_ignored(self, send, gateway, store):
        send(reply_id="drink_matcha")

        assert gateway.sent == []
        assert store.get_one("customers", {"customer_id": CUSTOMER})["preferred_drink"] is None


class TestDemoFlow:
    def test_full_card_then_streak_to_completion(self, send, store, gateway):
        send("DEMO")
        for _ in range(9):
            send("STAMP")
        assert state_of(store).is_at("demo", 1)

        send("STAMP")
        assert state_of(store).is_at("demo", 2)
        assert visits_of(store) == 10
        assert gateway.images() == ["https://cards.test/card?stamps=10"]
        assert any("10 stamps" in text for text in gateway.texts())

        send("STREAK")
        assert state_of(store).is_at("demo", 3)

        milestone_texts = []
        for _ in range(4):
            send("STAMP")
            milestone_texts += [t for t in gateway.texts() if "streak" in t.lower() and "day" in t.lower()]

        assert state_of(store).is_idle
        assert sum("2-day streak" in t for t in milestone_texts) == 1
        assert sum("5-day streak unlocked" in t for t in milestone_texts) == 1
        final = gateway.actions[-1]
        assert isinstance(final, SendButtons)
        assert [b.id for b in final.buttons] == ["more_features", "book_meeting"]

        assert GamificationService(store).owned_badges(CUSTOMER) >= {"first_stamp", "full_card", "on_fire"}
        assert len(store.select("visits", {"customer_id": CUSTOMER, "simulated": True})) == 4

    def test_stamp_card_image_is_capped(self, send, store, gateway):
        send("DEMO")
        for _ in range(10):
            send("STAMP")
        send("STREAK")
        send("STAMP")

        assert visits_of(store) == 11
        assert gateway.images() == ["https://cards.test/card?stamps=10"]

    def test_two_stamps_same_day_count_once_for_streak(self, send, store):
        send("DEMO")
        send("STAMP")
        send("STAMP")

        streak = GamificationService(store).get_streak(CUSTOMER, "visit")
        assert streak.current == 1
        assert visits_of(store) == 2

    def test_connect_demo_reply_restarts_demo(self, send, store):
        send("DEMO")
        send("STAMP")

        send(reply_id="connect_demo")

        assert state_of(store).is_at("demo", 1)
        assert visits_of(store) == 0

    def test_restart_resets_card_and_streak(self, send, store, gateway):
        send("DEMO")
        send("STAMP")

        send("RESTART")

        assert state_of(store).is_idle
        assert visits_of(store) == 0
        assert GamificationService(store).get_streak(CUSTOMER, "visit").current == 0
        assert "Fresh start" in gateway.texts()[0]


class TestMenuAndEdu:
    def test_connect_menu_is_stateless(self, send, store, gateway):
        send("CONNECT")

        assert state_of(store).is_idle
        assert [b.id for b in gateway.actions[0].buttons] == ["connect_meeting", "connect_demo"]

    def test_more_menu_then_dashboard(self, send, store, gateway):
        send(reply_id="more_features")
        assert state_of(store).is_at("menu", 1)

        send("dash")
        assert state_of(store).is_idle
        assert "https://dash.test/demo" in gateway.texts()[0]

    def test_more_streak_jumps_to_streak_intro(self, send, store):
        send(reply_id="more_streak")

        assert state_of(store).is_at("demo", 2)

    def test_book_meeting_starts_meeting(self, send, store):
        send(reply_id="book_meeting")

        assert state_of(store).is_at("meeting", 1)

    def test_invalid_email_reprompts(self, send, store, gateway):
        send("MEETING")
        send(reply_id="meeting_loyalty")

        send("not-an-email")

        assert state_of(store).is_at("meeting", 2)
        assert "email" in gateway.texts()[0]

    def test_edu_replies(self, send, gateway, settings):
        send(reply_id="edu_overview")
        assert settings.edu_yt_url in gateway.texts()[0]

        send(reply_id="edu_stamp")
        assert settings.edu_yt2_url in gateway.texts()[0]


class TestIncidentFlow:
    def _describe(self, send):
        send("REPORT")
        send(reply_id="incident_cat_infrastructure")
        send("Streetlight broken on Main Road since Monday")

    def test_report_with_photo(self, send, store, gateway):
        send("INCIDENT")
        assert isinstance(gateway.actions[0], SendList)

        send(reply_id="incident_cat_crime")
        assert state_of(store).data == {"category": "Crime"}

        send("too short")
        assert state_of(store).is_at("incident", 2)

        send("Car broken into outside the library")
        state = state_of(store)
        assert state.is_at("incident", 3)
        report = store.get_one("incident_reports", {"reference": state.data["reference"]})
        assert report["status"] == "awaiting_media"

        gateway.media["img1"] = (b"\xff\xd8jpeg", "image/jpeg")
        send(media=MediaInfo(kind="image", media_id="img1", mime_type="image/jpeg"))

        report = store.get_one("incident_reports", {"reference": report["reference"]})
        assert report["status"] == "submitted"
        assert report["photo_url"].startswith("http://testserver/media/wa-media/incidents/")
        assert state_of(store).is_idle
        assert "community_watch" in GamificationService(store).owned_badges(CUSTOMER)

    def test_skip_photo(self, send, store):
        self._describe(send)

        send("skip")

        report = store.get_one("incident_reports", {"customer_id": CUSTOMER})
        assert report["status"] == "submitted"
        assert report["photo_url"] is None
        assert state_of(store).is_idle

    def test_idle_customer_can_still_attach_photo(self, send, store, gateway):
        self._describe(send)
        send("CANCEL")
        assert state_of(store).is_idle

        gateway.media["img2"] = (b"\xff\xd8jpeg", "image/jpeg")
        send(media=MediaInfo(kind="image", media_id="img2", mime_type="image/jpeg"))

        report = store.get_one("incident_reports", {"customer_id": CUSTOMER})
        assert report["status"] == "submitted"
        assert report["photo_url"] is not None

    def test_report_is_submitted_only_once(self, send, store, gateway, services):
        self._describe(send)
        send("CANCEL")
        gateway.media["img3"] = (b"\xff\xd8jpeg", "image/jpeg")
        send(media=MediaInfo(kind="image", media_id="img3", mime_type="image/jpeg"))
        report = store.get_one("incident_reports", {"customer_id": CUSTOMER})

        # A second photo routed before the first one's submit landed.
        ctx = FlowContext(services, make_event(media=MediaInfo(kind="image", media_id="img4")), state_of(store))
        actions = IncidentFlow()._submit(ctx, report["reference"], photo_url="http://testserver/media/late.jpg")

        assert actions == []
        assert store.get_one("incident_reports", {"customer_id": CUSTOMER})["photo_url"] == report["photo_url"]
        assert len(store.select("badges", {"customer_id": CUSTOMER, "badge_code": "community_watch"})) == 1

    def test_failed_download_keeps_step(self, send, store, gateway):
        self._describe(send)

        send(media=MediaInfo(kind="image", media_id="missing", mime_type="image/jpeg"))

        assert state_of(store).is_at("incident", 3)
        assert "couldn't fetch" in gateway.texts()[0]


class TestQueueFlow:
    @pytest.fixture
    def location(self, store):
        return store.insert(
            "qmunity_locations",
            {"slug": "home-affairs", "name": "Home Affairs Bellville", "max_capacity": 50, "is_active": True},
        )

    def test_check_in_speed_and_issue(self, send, store, gateway, location):
        send("QUEUE")
        assert gateway.actions[0].sections[0].rows[0].id == "qloc_home-affairs"

        send(reply_id="qloc_home-affairs")
        state = state_of(store)
        assert state.is_at("queue", 2)
        assert state.data["location_id"] == location["id"]

        send("75")
        assert state_of(store).is_at("queue", 2)

        send("#12")
        assert state_of(store).is_at("queue", 3)
        checkin = store.get_one("qmunity_checkins", {"wa_from": CUSTOMER})
        assert checkin["queue_number"] == 12

        send(reply_id="qspeed_slow")
        assert state_of(store).is_at("queue", 4)
        assert store.get_one("qmunity_speed_reports", {"wa_from": CUSTOMER})["speed"] == "SLOW"

        send("Only one counter open")
        assert state_of(store).is_idle
        assert store.get_one("qmunity_issues", {"wa_from": CUSTOMER})["message"] == "Only one counter open"
        assert "/qmunity?location=home-affairs" in gateway.texts()[0]
        assert "queue_helper" in GamificationService(store).owned_badges(CUSTOMER)

    def test_skip_issue(self, send, store, location):
        send("QMUNITY")
        send(reply_id="qloc_home-affairs")
        send("3")
        send(reply_id="qspeed_quickly")
        send("SKIP")

        assert state_of(store).is_idle
        assert store.select("qmunity_issues") == []

    def test_no_active_locations(self, send, store, gateway):
        send("QUEUE")

        assert state_of(store).is_idle
        assert "no active queues" in gateway.texts()[0]


class TestBudgetFlow:
    def test_set_budget_log_expense_and_balance(self, send, store, gateway, settings):
        send("BUDGET")
        send("R 3,000")
        assert state_of(store).is_idle

        send("SPEND")
        send("lots")
        assert state_of(store).is_at("budget", 1)

        send("120.50")
        state = state_of(store)
        assert state.is_at("budget", 2)
        assert state.data == {"mode": "spend", "amount": 120.5}

        send(reply_id="budget_cat_food")
        assert state_of(store).is_idle
        expense = store.get_one("expenses", {"customer_id": CUSTOMER})
        assert expense["amount"] == 120.5
        assert expense["category"] == "Food"
        assert "Logged *R120.50* on Food" in gateway.texts()[0]

        today = local_today(settings.timezone_offset_hours)
        gamification = GamificationService(store)
        assert gamification.get_streak(CUSTOMER, "budget").current == 1
        assert gamification.get_streak(CUSTOMER, "on_track").last_activity_date == today
        assert "first_expense" in gamification.owned_badges(CUSTOMER)

        send("BALANCE")
        assert state_of(store).is_idle
        assert "Budget: R3,000.00" in gateway.texts()[0]
        assert "Spent: R120.50" in gateway.texts()[0]

    def test_second_expense_same_day_keeps_streak(self, send, store):
        for amount in ("50", "70"):
            send("LOG")
            send(amount)
            send(reply_id="budget_cat_other")

        assert len(store.select("expenses", {"customer_id": CUSTOMER})) == 2
        assert GamificationService(store).get_streak(CUSTOMER, "budget").current == 1

    def test_keyword_mid_flow_is_treated_as_input(self, send, store):
        send("SPEND")
        send("BUDGET")

        assert state_of(store).is_at("budget", 1)
        assert state_of(store).data == {"mode": "spend"}


class TestVoiceLogFlow:
    @pytest.fixture
    def llm(self, services):
        provider = Mock()
        provider.transcribe_audio.return_value = "This week I opened a second store and hired two baristas."
        provider.generate.return_value = LLMResponse(
            content='{"summary": "Opened a second store.", "highlights": ["second store", "hired baristas"], '
            '"mood": "great"}',
            model="gpt-4o-mini",
        )
        services.llm = provider
        return provider

    def _voice_note(self, gateway):
        gateway.media["aud1"] = (b"OggS\x00voice", "audio/ogg")
        return MediaInfo(kind="audio", media_id="aud1", mime_type="audio/ogg")

    def test_reflection_is_saved(self, send, store, gateway, llm):
        send("JOURNAL")
        send("hello?")
        assert state_of(store).is_at("voice_log", 1)

        send(media=self._voice_note(gateway))

        assert state_of(store).is_idle
        reflection = store.get_one("weekly_reflections", {"customer_id": CUSTOMER})
        assert reflection["summary"] == "Opened a second store."
        assert reflection["highlights"] == ["second store", "hired baristas"]
        assert reflection["mood"] == "great"
        assert reflection["audio_url"].startswith("http://testserver/media/wa-media/voice/")
        assert "Opened a second store." in gateway.texts()[0]
        assert "first_reflection" in GamificationService(store).owned_badges(CUSTOMER)

    def test_transcription_unavailable_reprompts(self, send, store, gateway):
        send("VOICE")

        send(media=self._voice_note(gateway))

        assert state_of(store).is_at("voice_log", 1)
        assert "try recording it again" in gateway.texts()[0]

    def test_persistence_failure_goes_to_dead_letter(self, send, store, gateway, llm, monkeypatch):
        original_insert = store.insert

        def failing_insert(table, row):
            if table == "weekly_reflections":
                raise RecordStoreError("insert rejected")
            return original_insert(table, row)

        monkeypatch.setattr(store, "insert", failing_insert)
        send("JOURNAL")

        send(media=self._voice_note(gateway))

        assert state_of(store).is_idle
        dead = store.get_one("dead_letters", {"customer_id": CUSTOMER})
        assert dead["source"] == "voice_log"
        assert dead["payload"]["transcript"].startswith("This week I opened")
        assert "couldn't save" in gateway.texts()[0]

    def test_non_object_llm_reply_still_saves_reflection(self, send, store, gateway, llm):
        llm.generate.return_value = LLMResponse(content="null", model="gpt-4o-mini")
        send("JOURNAL")

        send(media=self._voice_note(gateway))

        reflection = store.get_one("weekly_reflections", {"customer_id": CUSTOMER})
        assert reflection["summary"].startswith("This week I opened a second store")
        assert reflection["highlights"] == []
        assert "Saved" in gateway.texts()[0]
