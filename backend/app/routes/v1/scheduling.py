# backend/app/routes/v1/scheduling.py
"""
Scheduling routes - API v1

Versioned scheduling endpoints under /api/v1.
All business logic delegated to SchedulingService.

Endpoints:
    GET /subjects/{subject_id}/available-slots - Free slots and tutor counts for a date
    GET /subjects/{subject_id}/smart-tutors - Tutors ranked for a requested time
    GET /subjects/{subject_id}/next-available-dates - Upcoming dates with free slots
    POST /lessons - Book a single lesson
    POST /lessons/{lesson_id}/reassign - Move a lesson to another free tutor
    GET /lessons/{lesson_id}/alternative-tutors - Other tutors free for a lesson
    POST /lessons/{lesson_id}/recurrence - Turn a lesson into a recurring series
    POST /recurring-groups/{group_id}/edit - Edit one, later or all lessons of a series
    POST /recurring-groups/{group_id}/cancel - Cancel a series from an instant onwards
    GET /tutors/{tutor_id}/time-off-impact - Lessons a proposed time-off would hit
"""

import asyncio
from datetime import date, datetime, time, timedelta
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from ...api.dependencies import get_scheduling_service
from ...core.exceptions import DomainException, RepositoryException
from ...models.lesson import Lesson
from ...schemas.scheduling import (
    AlternativeTutorsResponse,
    AvailableDateResponse,
    AvailableSlotsResponse,
    CancelSeriesRequest,
    CancelSeriesResponse,
    CandidateSlotResponse,
    LessonCreate,
    LessonReassign,
    LessonResponse,
    NextAvailableDatesResponse,
    RankedTutorResponse,
    RecurrenceCreate,
    RecurringSeriesResponse,
    SeriesEditRequest,
    SeriesEditResponse,
    SmartTutorsResponse,
    TimeOffImpactResponse,
)
from ...services.recurring_series_service import RecurrencePattern, SeriesEdit, SeriesStart
from ...services.scheduling_service import SchedulingService
from ...services.tutor_ranker import RankedTutor

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["scheduling-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def handle_repository_exception(exc: RepositoryException) -> NoReturn:
    logger.error("Scheduling store unavailable", extra={"error": str(exc)})
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Scheduling data temporarily unavailable. Please retry.",
        headers={"Retry-After": "2"},
    )


def _lesson_response(lesson: Lesson) -> LessonResponse:
    return LessonResponse.model_validate(lesson)


def _ranked_tutor_response(tutor: RankedTutor) -> RankedTutorResponse:
    return RankedTutorResponse(
        tutor_id=tutor.tutor_id,
        first_name=tutor.first_name,
        last_name=tutor.last_name,
        status=tutor.status,
        conflicts=tutor.conflicts,
    )


# ============================================================================
# SECTION 1: Availability reads
# ============================================================================


@router.get("/subjects/{subject_id}/available-slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    subject_id: str,
    target_date: date = Query(..., alias="date"),
    scheduling_service: SchedulingService = Depends(get_scheduling_service),
) -> AvailableSlotsResponse:
    """Free slots for a subject on a date, with the tutors free for each."""
    try:
        slots = await scheduling_service.get_available_slots(subject_id, target_date)
    except DomainException as e:
        handle_domain_exception(e)
    except RepositoryException as e:
        handle_repository_exception(e)

    return AvailableSlotsResponse(
        subject_id=subject_id,
        date=target_date,
        slots=[
            CandidateSlotResponse(
                slot_time=slot.local_time,
                display_start=slot.display_start,
                display_end=slot.display_end,
                lesson_start=slot.lesson_start,
                lesson_end=slot.lesson_end,
                available=slot.available,
                tutor_ids=slot.tutor_ids,
                tutor_count=slot.tutor_count,
            )
            for slot in slots
        ],
    )


@router.get("/subjects/{subject_id}/smart-tutors", response_model=SmartTutorsResponse)
async def get_smart_tutors(
    subject_id: str,
    target_date: date = Query(..., alias="date"),
    requested_time: time = Query(..., alias="time", description="Display time, HH:MM"),
    scheduling_service: SchedulingService = Depends(get_scheduling_service),
) -> SmartTutorsResponse:
    """Every qualified tutor ranked for the requested time."""
    try:
        tutors = await scheduling_service.get_smart_tutors(subject_id, target_date, requested_time)
    except DomainException as e:
        handle_domain_exception(e)
    except RepositoryException as e:
        handle_repository_exception(e)

    interval = scheduling_service.ranker.lesson_interval(target_date, requested_time)
    return SmartTutorsResponse(
        subject_id=subject_id,
        date=target_date,
        time=requested_time,
        lesson_start=interval.start,
        lesson_end=interval.end,
        tutors=[_ranked_tutor_response(tutor) for tutor in tutors],
    )


@router.get(
    "/subjects/{subject_id}/next-available-dates", response_model=NextAvailableDatesResponse
)
async def get_next_available_dates(
    subject_id: str,
    exclude_date: Optional[date] = Query(None),
    scheduling_service: SchedulingService = Depends(get_scheduling_service),
) -> NextAvailableDatesResponse:
    """The next few dates (from tomorrow) with at least one free slot."""
    try:
        dates = await scheduling_service.get_next_available_dates(subject_id, exclude_date)
    except DomainException as e:
        handle_domain_exception(e)
    except RepositoryException as e:
        handle_repository_exception(e)

    return NextAvailableDatesResponse(
        subject_id=subject_id,
        dates=[
            AvailableDateResponse(
                date=found.date,
                tutor_count=found.tutor_count,
                available_slots=found.available_slots,
            )
            for found in dates
        ],
    )


# ============================================================================
# SECTION 2: Lesson writes
# ============================================================================


@router.post("/lessons", response_model=LessonResponse, status_code=status.HTTP_201_CREATED)
async def create_lesson(
    payload: LessonCreate = Body(...),
    scheduling_service: SchedulingService = Depends(get_scheduling_service),
) -> LessonResponse:
    """Book a single lesson. 409 SLOT_UNAVAILABLE when the slot was taken meanwhile."""
    try:
        lesson = await asyncio.to_thread(
            scheduling_service.create_lesson,
            payload.tutor_id,
            payload.subject_id,
            payload.title,
            payload.start_at,
            payload.end_at,
            payload.student_ids,
        )
    except DomainException as e:
        handle_domain_exception(e)
    except RepositoryException as e:
        handle_repository_exception(e)
    return _lesson_response(lesson)


@router.post("/lessons/{lesson_id}/reassign", response_model=LessonResponse)
async def reassign_lesson(
    lesson_id: str,
    payload: LessonReassign = Body(...),
    scheduling_service: SchedulingService = Depends(get_scheduling_service),
) -> LessonResponse:
    """Hand a scheduled lesson to another tutor who is free for it."""
    try:
        lesson = await asyncio.to_thread(
            scheduling_service.reassign_lesson, lesson_id, payload.tutor_id, payload.reason
        )
    except DomainException as e:
        handle_domain_exception(e)
    except RepositoryException as e:
        handle_repository_exception(e)
    return _lesson_response(lesson)


@router.get("/lessons/{lesson_id}/alternative-tutors", response_model=AlternativeTutorsResponse)
async def get_alternative_tutors(
    lesson_id: str,
    scheduling_service: SchedulingService = Depends(get_scheduling_service),
) -> AlternativeTutorsResponse:
    """Tutors of the same subject, other than the lesson's own, free for its interval."""
    try:
        lesson, tutors = await scheduling_service.find_alternative_tutors(lesson_id)
    except DomainException as e:
        handle_domain_exception(e)
    except RepositoryException as e:
        handle_repository_exception(e)

    return AlternativeTutorsResponse(
        lesson_id=lesson_id,
        lesson_start=lesson.start_at,
        lesson_end=lesson.end_at,
        tutors=[_ranked_tutor_response(tutor) for tutor in tutors],
    )


@router.post(
    "/lessons/{lesson_id}/recurrence",
    response_model=RecurringSeriesResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_recurring_series(
    lesson_id: str,
    payload: RecurrenceCreate = Body(...),
    scheduling_service: SchedulingService = Depends(get_scheduling_service),
) -> RecurringSeriesResponse:
    """Materialize a recurring series from an existing lesson."""
    try:
        pattern = RecurrencePattern.from_raw(payload.interval, payload.end_date)
        series: SeriesStart = await asyncio.to_thread(
            scheduling_service.create_recurring_series, lesson_id, pattern
        )
    except DomainException as e:
        handle_domain_exception(e)
    except RepositoryException as e:
        handle_repository_exception(e)

    return RecurringSeriesResponse(
        group_id=series.group_id,
        instances_created=len(series.instances),
        instances=[_lesson_response(lesson) for lesson in series.instances],
    )


@router.post("/recurring-groups/{group_id}/edit", response_model=SeriesEditResponse)
async def edit_recurring_series(
    group_id: str,
    payload: SeriesEditRequest = Body(...),
    scheduling_service: SchedulingService = Depends(get_scheduling_service),
) -> SeriesEditResponse:
    """Edit one lesson, a lesson and those after it, or a whole series."""
    changes = SeriesEdit(
        title=payload.title,
        tutor_id=payload.tutor_id,
        start_time=payload.start_time,
        duration=(
            timedelta(minutes=payload.duration_minutes)
            if payload.duration_minutes is not None
            else None
        ),
        student_ids=tuple(payload.student_ids) if payload.student_ids is not None else None,
    )
    try:
        lessons = await asyncio.to_thread(
            scheduling_service.edit_series, group_id, payload.scope, changes, payload.lesson_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    except RepositoryException as e:
        handle_repository_exception(e)

    return SeriesEditResponse(
        group_id=group_id,
        scope=payload.scope,
        updated_count=len(lessons),
        lessons=[_lesson_response(lesson) for lesson in lessons],
    )


@router.post("/recurring-groups/{group_id}/cancel", response_model=CancelSeriesResponse)
async def cancel_recurring_series(
    group_id: str,
    payload: Optional[CancelSeriesRequest] = Body(None),
    scheduling_service: SchedulingService = Depends(get_scheduling_service),
) -> CancelSeriesResponse:
    """Cancel future instances of a series and stop extending it."""
    from_instant: Optional[datetime] = payload.from_instant if payload else None
    try:
        cancelled = await asyncio.to_thread(
            scheduling_service.cancel_series, group_id, from_instant
        )
    except DomainException as e:
        handle_domain_exception(e)
    except RepositoryException as e:
        handle_repository_exception(e)

    return CancelSeriesResponse(
        group_id=group_id,
        cancelled_count=len(cancelled),
        cancelled_lesson_ids=[lesson.id for lesson in cancelled],
    )


@router.get("/tutors/{tutor_id}/time-off-impact", response_model=TimeOffImpactResponse)
async def get_time_off_impact(
    tutor_id: str,
    start_at: datetime = Query(...),
    end_at: datetime = Query(...),
    scheduling_service: SchedulingService = Depends(get_scheduling_service),
) -> TimeOffImpactResponse:
    """Active lessons that a proposed time-off window would collide with."""
    try:
        lessons = await asyncio.to_thread(
            scheduling_service.check_time_off_impact, tutor_id, start_at, end_at
        )
    except DomainException as e:
        handle_domain_exception(e)
    except RepositoryException as e:
        handle_repository_exception(e)

    return TimeOffImpactResponse(
        tutor_id=tutor_id,
        start_at=start_at,
        end_at=end_at,
        has_conflicts=bool(lessons),
        lessons=[_lesson_response(lesson) for lesson in lessons],
    )
