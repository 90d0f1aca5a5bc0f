"""Tests for the interview scheduling service."""

import threading
import uuid
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from interview_scheduler.applications.models import Application, ApplicationStatus
from interview_scheduler.database.base import Base
from interview_scheduler.errors import (
    Conflict,
    InvalidRequest,
    InvalidState,
    LockUnavailable,
    NotFound,
    Unauthorized,
)
from interview_scheduler.integrations.locks import LocalLockService
from interview_scheduler.interview.models import Interview, InterviewSlot, InterviewStatus, InterviewType
from interview_scheduler.interview.schemas import InterviewFeedback, InterviewFilters, SlotDefinition
from interview_scheduler.interview.service import (
    SchedulingService,
    get_interviews,
    get_upcoming_interviews,
)
from interview_scheduler.notifications.dispatch import NotificationKind
from interview_scheduler.scheduling.intervals import TimeWindow, as_utc

MONDAY = datetime(2030, 1, 7, tzinfo=UTC)


def _at(hour: int, minute: int = 0, minutes: int = 60, day: int = 0) -> TimeWindow:
    return TimeWindow.from_duration(MONDAY + timedelta(days=day, hours=hour, minutes=minute), minutes)


@pytest.fixture
def booked(db_session, scheduler, test_application, interviewer_id):
    """An interview on Monday 10:00-11:00."""
    return scheduler.schedule(
        db_session,
        test_application.id,
        interviewer_id,
        _at(10),
        InterviewType.VIDEO,
        meeting_link="https://meet.example.com/abc",
        notes="Initial screen",
    )


class TestSchedule:
    def test_creates_scheduled_interview(self, db_session, booked, test_application, interviewer_id):
        assert booked.status == InterviewStatus.SCHEDULED
        assert booked.application_id == test_application.id
        assert booked.candidate_id == test_application.candidate_id
        assert booked.job_id == test_application.job_id
        assert booked.interviewer_id == interviewer_id
        assert booked.duration_minutes == 60
        assert as_utc(booked.scheduled_at) == MONDAY + timedelta(hours=10)
        assert as_utc(booked.ends_at) == MONDAY + timedelta(hours=11)

    def test_advances_application_status(self, db_session, booked, test_application):
        db_session.refresh(test_application)
        assert test_application.status == ApplicationStatus.INTERVIEW_SCHEDULED
        assert booked.application_prior_status == ApplicationStatus.SHORTLISTED

    def test_notifies_candidate_and_interviewer(self, booked, dispatcher, test_application, interviewer_id):
        recipients = {n.user_id for n in dispatcher.sent}
        assert recipients == {test_application.candidate_id, interviewer_id}
        assert dispatcher.kinds() == [NotificationKind.SCHEDULED, NotificationKind.SCHEDULED]
        assert dispatcher.sent[0].data["interview_id"] == str(booked.id)

    def test_missing_application(self, db_session, scheduler, interviewer_id):
        with pytest.raises(NotFound):
            scheduler.schedule(db_session, uuid.uuid4(), interviewer_id, _at(10), InterviewType.PHONE)

    def test_overlapping_window_conflicts(self, db_session, scheduler, booked, make_application, interviewer_id):
        with pytest.raises(Conflict) as exc_info:
            scheduler.schedule(db_session, make_application().id, interviewer_id, _at(10, 30), InterviewType.PHONE)

        assert exc_info.value.context["conflicting_interview_id"] == str(booked.id)
        assert exc_info.value.context["conflicting_start"] == (MONDAY + timedelta(hours=10)).isoformat()
        assert exc_info.value.context["conflicting_end"] == (MONDAY + timedelta(hours=11)).isoformat()

    def test_conflict_sends_no_notification(self, db_session, scheduler, booked, make_application, interviewer_id,
                                            dispatcher):
        before = len(dispatcher.sent)
        with pytest.raises(Conflict):
            scheduler.schedule(db_session, make_application().id, interviewer_id, _at(10), InterviewType.PHONE)
        assert len(dispatcher.sent) == before

    def test_back_to_back_is_allowed(self, db_session, scheduler, booked, make_application, interviewer_id):
        second = scheduler.schedule(db_session, make_application().id, interviewer_id, _at(11), InterviewType.PHONE)
        assert second.status == InterviewStatus.SCHEDULED

    def test_duplicate_application_conflicts_regardless_of_time(self, db_session, scheduler, booked,
                                                                test_application):
        with pytest.raises(Conflict) as exc_info:
            scheduler.schedule(db_session, test_application.id, uuid.uuid4(), _at(15, day=3), InterviewType.ONSITE)
        assert exc_info.value.context["existing_interview_id"] == str(booked.id)
        assert db_session.query(Interview).count() == 1

    def test_terminal_interview_frees_the_window(self, db_session, scheduler, booked, make_application,
                                                 interviewer_id, test_application):
        scheduler.cancel(db_session, booked.id, "Candidate withdrew", test_application.candidate_id)
        again = scheduler.schedule(db_session, make_application().id, interviewer_id, _at(10), InterviewType.VIDEO)
        assert again.status == InterviewStatus.SCHEDULED

    def test_dispatch_failure_keeps_the_booking(self, db_session, scheduler, dispatcher, test_application,
                                                interviewer_id):
        dispatcher.fail_for.add(test_application.candidate_id)
        interview = scheduler.schedule(db_session, test_application.id, interviewer_id, _at(10), InterviewType.VIDEO)

        assert db_session.get(Interview, interview.id) is not None
        assert [n.user_id for n in dispatcher.sent] == [interviewer_id]

    def test_naive_window_is_treated_as_utc(self, db_session, scheduler, test_application, interviewer_id):
        naive = TimeWindow(datetime(2030, 1, 7, 10), datetime(2030, 1, 7, 11))
        interview = scheduler.schedule(db_session, test_application.id, interviewer_id, naive, InterviewType.VIDEO)
        assert as_utc(interview.scheduled_at) == MONDAY + timedelta(hours=10)


class _ExpiredLease:
    def ensure_held(self):
        raise LockUnavailable("Lock expired before commit, try again", lock="interviewer")


class _ExpiringLocks:
    """Grants every lock but loses it before the commit."""

    @contextmanager
    def hold(self, key):
        yield _ExpiredLease()


class TestLockLostBeforeCommit:
    def test_schedule_is_rolled_back(self, db_session, dispatcher, test_application, interviewer_id):
        scheduler = SchedulingService(_ExpiringLocks(), dispatcher)

        with pytest.raises(LockUnavailable):
            scheduler.schedule(db_session, test_application.id, interviewer_id, _at(10), InterviewType.VIDEO)

        assert db_session.query(Interview).count() == 0
        assert dispatcher.sent == []
        db_session.refresh(test_application)
        assert test_application.status == ApplicationStatus.SHORTLISTED

    def test_reschedule_is_rolled_back(self, db_session, booked, dispatcher):
        scheduler = SchedulingService(_ExpiringLocks(), dispatcher)
        dispatcher.sent.clear()

        with pytest.raises(LockUnavailable):
            scheduler.reschedule(db_session, booked.id, _at(14))

        db_session.refresh(booked)
        assert booked.status == InterviewStatus.SCHEDULED
        assert as_utc(booked.scheduled_at) == MONDAY + timedelta(hours=10)
        assert dispatcher.sent == []


class TestConcurrentSchedule:
    @pytest.fixture
    def Session(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'race.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        yield sessionmaker(bind=engine)
        engine.dispose()

    @pytest.fixture
    def race_scheduler(self, dispatcher):
        return SchedulingService(LocalLockService(blocking_timeout=30), dispatcher)

    @staticmethod
    def _applications(Session, count):
        with Session() as setup:
            applications = [
                Application(id=uuid.uuid4(), job_id=uuid.uuid4(), candidate_id=uuid.uuid4()) for _ in range(count)
            ]
            setup.add_all(applications)
            setup.commit()
            return [a.id for a in applications]

    @staticmethod
    def _run_together(attempts):
        """Start every attempt at the same moment; returns the sorted outcomes."""
        barrier = threading.Barrier(len(attempts))
        outcomes: list[str] = []
        outcomes_lock = threading.Lock()

        def run(attempt):
            barrier.wait()
            try:
                attempt()
                result = "ok"
            except Conflict:
                result = "conflict"
            with outcomes_lock:
                outcomes.append(result)

        threads = [threading.Thread(target=run, args=(attempt,)) for attempt in attempts]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)
        return sorted(outcomes)

    def test_only_one_overlapping_booking_wins(self, Session, race_scheduler):
        interviewer_id = uuid.uuid4()
        app_ids = self._applications(Session, 4)

        def booking(app_id, minute):
            def attempt():
                with Session() as db:
                    race_scheduler.schedule(db, app_id, interviewer_id, _at(10, minute), InterviewType.VIDEO)
            return attempt

        outcomes = self._run_together([booking(app_id, i * 10) for i, app_id in enumerate(app_ids)])

        assert outcomes == ["conflict", "conflict", "conflict", "ok"]
        with Session() as check:
            assert check.query(Interview).filter(Interview.interviewer_id == interviewer_id).count() == 1

    def test_reschedule_and_booking_into_same_window(self, Session, race_scheduler):
        interviewer_id = uuid.uuid4()
        moving_app, new_app = self._applications(Session, 2)
        with Session() as setup:
            moving_id = race_scheduler.schedule(setup, moving_app, interviewer_id, _at(9), InterviewType.VIDEO).id

        def move():
            with Session() as db:
                race_scheduler.reschedule(db, moving_id, _at(10))

        def book():
            with Session() as db:
                race_scheduler.schedule(db, new_app, interviewer_id, _at(10, 30), InterviewType.PHONE)

        assert self._run_together([move, book]) == ["conflict", "ok"]

        with Session() as check:
            active = (
                check.query(Interview)
                .filter(
                    Interview.interviewer_id == interviewer_id,
                    Interview.status.in_([InterviewStatus.SCHEDULED, InterviewStatus.RESCHEDULED]),
                )
                .order_by(Interview.scheduled_at)
                .all()
            )
            windows = [TimeWindow(as_utc(i.scheduled_at), as_utc(i.ends_at)) for i in active]
        assert all(a.end <= b.start for a, b in zip(windows, windows[1:]))


class TestConfirm:
    def test_candidate_confirms(self, db_session, scheduler, booked, dispatcher, interviewer_id):
        interview = scheduler.confirm(db_session, booked.id, booked.candidate_id)
        assert interview.status == InterviewStatus.CONFIRMED
        assert dispatcher.sent[-1].kind == NotificationKind.CONFIRMED
        assert dispatcher.sent[-1].user_id == interviewer_id

    def test_stranger_cannot_confirm(self, db_session, scheduler, booked):
        with pytest.raises(Unauthorized):
            scheduler.confirm(db_session, booked.id, uuid.uuid4())

    def test_confirming_twice_is_invalid(self, db_session, scheduler, booked, interviewer_id):
        scheduler.confirm(db_session, booked.id, interviewer_id)
        with pytest.raises(InvalidState):
            scheduler.confirm(db_session, booked.id, interviewer_id)

    def test_rescheduled_can_be_confirmed(self, db_session, scheduler, booked, interviewer_id):
        scheduler.reschedule(db_session, booked.id, _at(14))
        assert scheduler.confirm(db_session, booked.id, interviewer_id).status == InterviewStatus.CONFIRMED


class TestReschedule:
    def test_moves_interview_and_appends_reason(self, db_session, scheduler, booked, dispatcher):
        interview = scheduler.reschedule(db_session, booked.id, _at(14, minutes=45), reason="Interviewer sick")

        assert interview.status == InterviewStatus.RESCHEDULED
        assert as_utc(interview.scheduled_at) == MONDAY + timedelta(hours=14)
        assert as_utc(interview.ends_at) == MONDAY + timedelta(hours=14, minutes=45)
        assert interview.duration_minutes == 45
        assert interview.notes == "Initial screen\nRescheduled: Interviewer sick"
        assert dispatcher.sent[-1].kind == NotificationKind.RESCHEDULED
        assert dispatcher.sent[-1].data["old_time"] == (MONDAY + timedelta(hours=10)).isoformat()

    def test_default_note_without_reason(self, db_session, scheduler, booked):
        interview = scheduler.reschedule(db_session, booked.id, _at(14))
        assert interview.notes.endswith("Interview rescheduled")

    def test_overlap_with_itself_is_fine(self, db_session, scheduler, booked):
        interview = scheduler.reschedule(db_session, booked.id, _at(10, 30))
        assert as_utc(interview.scheduled_at) == MONDAY + timedelta(hours=10, minutes=30)

    def test_conflict_with_other_interview(self, db_session, scheduler, booked, make_application, interviewer_id):
        other = scheduler.schedule(db_session, make_application().id, interviewer_id, _at(13), InterviewType.PHONE)
        with pytest.raises(Conflict) as exc_info:
            scheduler.reschedule(db_session, booked.id, _at(12, 30))
        assert exc_info.value.context["conflicting_interview_id"] == str(other.id)

        db_session.refresh(booked)
        assert booked.status == InterviewStatus.SCHEDULED
        assert as_utc(booked.scheduled_at) == MONDAY + timedelta(hours=10)

    def test_round_trip_stays_rescheduled(self, db_session, scheduler, booked):
        scheduler.reschedule(db_session, booked.id, _at(15))
        interview = scheduler.reschedule(db_session, booked.id, _at(10))
        assert interview.status == InterviewStatus.RESCHEDULED
        assert as_utc(interview.scheduled_at) == MONDAY + timedelta(hours=10)

    def test_missing_interview(self, db_session, scheduler):
        with pytest.raises(NotFound):
            scheduler.reschedule(db_session, uuid.uuid4(), _at(10))

    def test_cancelled_interview_cannot_move(self, db_session, scheduler, booked):
        scheduler.cancel(db_session, booked.id, "No longer needed", booked.interviewer_id)
        with pytest.raises(InvalidState):
            scheduler.reschedule(db_session, booked.id, _at(15))


class TestCancel:
    def test_cancels_and_reverts_application(self, db_session, scheduler, make_application, interviewer_id,
                                             dispatcher):
        application = make_application(ApplicationStatus.REVIEWING)
        booked = scheduler.schedule(db_session, application.id, interviewer_id, _at(10), InterviewType.VIDEO)

        interview = scheduler.cancel(db_session, booked.id, "Position filled", interviewer_id)

        assert interview.status == InterviewStatus.CANCELLED
        assert interview.notes == f"Cancelled by {interviewer_id}: Position filled"
        db_session.refresh(application)
        assert application.status == ApplicationStatus.REVIEWING
        assert dispatcher.sent[-1].kind == NotificationKind.CANCELLED
        assert dispatcher.sent[-1].user_id == application.candidate_id

    def test_candidate_cancel_notifies_interviewer(self, db_session, scheduler, booked, dispatcher, interviewer_id):
        scheduler.cancel(db_session, booked.id, "Accepted another offer", booked.candidate_id)
        assert dispatcher.sent[-1].user_id == interviewer_id

    def test_stranger_cannot_cancel(self, db_session, scheduler, booked):
        with pytest.raises(Unauthorized):
            scheduler.cancel(db_session, booked.id, "spam", uuid.uuid4())
        db_session.refresh(booked)
        assert booked.status == InterviewStatus.SCHEDULED

    def test_cancel_completed_is_invalid(self, db_session, scheduler, booked, interviewer_id):
        scheduler.submit_feedback(
            db_session, booked.id, interviewer_id, InterviewFeedback(rating=3, recommendation="maybe")
        )
        with pytest.raises(InvalidState):
            scheduler.cancel(db_session, booked.id, "too late", interviewer_id)

    def test_cancel_twice_is_invalid(self, db_session, scheduler, booked, interviewer_id):
        scheduler.cancel(db_session, booked.id, "first", interviewer_id)
        with pytest.raises(InvalidState):
            scheduler.cancel(db_session, booked.id, "second", interviewer_id)

    def test_missing_interview(self, db_session, scheduler, interviewer_id):
        with pytest.raises(NotFound):
            scheduler.cancel(db_session, uuid.uuid4(), "gone", interviewer_id)


class TestSubmitFeedback:
    def test_completes_with_feedback(self, db_session, scheduler, booked, interviewer_id, test_application):
        feedback = InterviewFeedback(
            rating=5,
            recommendation="strong_yes",
            technical_skills=5,
            strengths="Clear system design",
        )
        interview = scheduler.submit_feedback(db_session, booked.id, interviewer_id, feedback)

        assert interview.status == InterviewStatus.COMPLETED
        assert interview.feedback["rating"] == 5
        assert interview.feedback["recommendation"] == "strong_yes"
        assert interview.feedback["strengths"] == "Clear system design"
        assert "submitted_at" in interview.feedback
        db_session.refresh(test_application)
        assert test_application.notes == "Interview feedback: strong_yes"

    def test_negative_feedback_leaves_application_notes(self, db_session, scheduler, booked, interviewer_id,
                                                        test_application):
        scheduler.submit_feedback(db_session, booked.id, interviewer_id, InterviewFeedback(rating=1, recommendation="no"))
        db_session.refresh(test_application)
        assert test_application.notes is None

    def test_wrong_interviewer_looks_like_missing(self, db_session, scheduler, booked, interviewer_id):
        feedback = InterviewFeedback(rating=4, recommendation="yes")
        with pytest.raises(NotFound) as wrong_actor:
            scheduler.submit_feedback(db_session, booked.id, uuid.uuid4(), feedback)
        with pytest.raises(NotFound) as missing:
            scheduler.submit_feedback(db_session, uuid.uuid4(), interviewer_id, feedback)
        assert wrong_actor.value.message == missing.value.message

    def test_feedback_on_cancelled_is_invalid(self, db_session, scheduler, booked, interviewer_id):
        scheduler.cancel(db_session, booked.id, "cancelled", interviewer_id)
        with pytest.raises(InvalidState):
            scheduler.submit_feedback(db_session, booked.id, interviewer_id, InterviewFeedback(rating=4, recommendation="yes"))

    def test_rejects_out_of_range_rating(self):
        with pytest.raises(ValueError):
            InterviewFeedback(rating=6, recommendation="yes")

    def test_rejects_unknown_recommendation(self):
        with pytest.raises(ValueError):
            InterviewFeedback(rating=3, recommendation="definitely")


class TestSetAvailability:
    def test_replaces_whole_slot_set(self, db_session, scheduler, interviewer_id):
        first = [
            SlotDefinition(day_of_week=1, start_time="09:00", end_time="12:00", effective_from="2030-01-01"),
            SlotDefinition(day_of_week=3, start_time="13:00", end_time="17:00", effective_from="2030-01-01"),
        ]
        scheduler.set_availability(db_session, interviewer_id, first)
        assert db_session.query(InterviewSlot).filter_by(user_id=interviewer_id).count() == 2

        second = [SlotDefinition(day_of_week=5, start_time="10:00", end_time="11:00", effective_from="2030-01-01")]
        created = scheduler.set_availability(db_session, interviewer_id, second)

        slots = db_session.query(InterviewSlot).filter_by(user_id=interviewer_id).all()
        assert len(slots) == 1
        assert slots[0].id == created[0].id
        assert slots[0].day_of_week == 5

    def test_other_users_slots_untouched(self, db_session, scheduler, interviewer_id):
        other = uuid.uuid4()
        slot = SlotDefinition(day_of_week=1, start_time="09:00", end_time="10:00", effective_from="2030-01-01")
        scheduler.set_availability(db_session, other, [slot])
        scheduler.set_availability(db_session, interviewer_id, [])
        assert db_session.query(InterviewSlot).filter_by(user_id=other).count() == 1

    def test_slot_validation(self):
        with pytest.raises(ValueError):
            SlotDefinition(day_of_week=1, start_time="12:00", end_time="09:00", effective_from="2030-01-01")
        with pytest.raises(ValueError):
            SlotDefinition(day_of_week=7, start_time="09:00", end_time="10:00", effective_from="2030-01-01")
        with pytest.raises(ValueError):
            SlotDefinition(
                day_of_week=1, start_time="09:00", end_time="10:00", effective_from="2030-01-01", timezone="Mars/Base"
            )
        with pytest.raises(ValueError):
            SlotDefinition(
                day_of_week=1, start_time="09:00", end_time="10:00", effective_from="2030-01-01", timezone="America"
            )


class TestGetInterviews:
    @pytest.fixture
    def three_interviews(self, db_session, scheduler, make_application, interviewer_id):
        late = scheduler.schedule(db_session, make_application().id, interviewer_id, _at(15), InterviewType.VIDEO)
        early = scheduler.schedule(db_session, make_application().id, interviewer_id, _at(9), InterviewType.PHONE)
        other = scheduler.schedule(db_session, make_application().id, uuid.uuid4(), _at(9, day=1), InterviewType.ONSITE)
        return early, late, other

    def test_orders_by_start(self, db_session, three_interviews):
        early, late, other = three_interviews
        items, total = get_interviews(db_session)
        assert total == 3
        assert [i.id for i in items] == [early.id, late.id, other.id]

    def test_filters_by_interviewer(self, db_session, three_interviews, interviewer_id):
        items, total = get_interviews(db_session, InterviewFilters(interviewer_id=interviewer_id))
        assert total == 2

    def test_filters_by_status_and_dates(self, db_session, scheduler, three_interviews, interviewer_id):
        early, late, other = three_interviews
        scheduler.cancel(db_session, late.id, "nope", interviewer_id)

        items, total = get_interviews(db_session, InterviewFilters(status=InterviewStatus.CANCELLED))
        assert [i.id for i in items] == [late.id]

        items, total = get_interviews(
            db_session,
            InterviewFilters(from_date=MONDAY + timedelta(hours=12), to_date=MONDAY + timedelta(days=2)),
        )
        assert [i.id for i in items] == [late.id, other.id]

    def test_filters_by_candidate_and_job(self, db_session, three_interviews):
        early, _, _ = three_interviews
        items, _ = get_interviews(db_session, InterviewFilters(candidate_id=early.candidate_id))
        assert [i.id for i in items] == [early.id]
        items, _ = get_interviews(db_session, InterviewFilters(job_id=early.job_id))
        assert [i.id for i in items] == [early.id]

    def test_paginates(self, db_session, three_interviews):
        early, late, other = three_interviews
        items, total = get_interviews(db_session, page=2, limit=2)
        assert total == 3
        assert [i.id for i in items] == [other.id]

    def test_rejects_bad_limit(self, db_session):
        with pytest.raises(InvalidRequest):
            get_interviews(db_session, limit=500)


class TestGetUpcomingInterviews:
    def test_returns_active_future_interviews_for_participant(self, db_session, scheduler, booked, interviewer_id):
        now = MONDAY
        assert [i.id for i in get_upcoming_interviews(db_session, interviewer_id, now)] == [booked.id]
        assert [i.id for i in get_upcoming_interviews(db_session, booked.candidate_id, now)] == [booked.id]
        assert get_upcoming_interviews(db_session, uuid.uuid4(), now) == []

    def test_excludes_past_and_cancelled(self, db_session, scheduler, booked, interviewer_id):
        assert get_upcoming_interviews(db_session, interviewer_id, MONDAY + timedelta(hours=12)) == []
        scheduler.cancel(db_session, booked.id, "nope", interviewer_id)
        assert get_upcoming_interviews(db_session, interviewer_id, MONDAY) == []
