"""FastAPI endpoints for beacons, matches and the manual match run."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from tribelife.api.errors import policy_http_error
from tribelife.domain.beacons.jobs import BeaconMatchJob
from tribelife.domain.beacons.schemas import (
	BeaconCreateRequest,
	BeaconEnvelope,
	BeaconListResponse,
	MatchListResponse,
	MatchRunResponse,
)
from tribelife.domain.beacons.service import BeaconService
from tribelife.domain.common.errors import PolicyError
from tribelife.infra.auth import AuthenticatedUser, get_admin_user, get_current_user

router = APIRouter(prefix="/api/beacons", tags=["beacons"])


def get_beacon_service(request: Request) -> BeaconService:
	service = getattr(request.app.state, "beacon_service", None)
	if service is None:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="beacons_unavailable")
	return service


def get_match_job(request: Request) -> BeaconMatchJob:
	job = getattr(request.app.state, "match_job", None)
	if job is None:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="matching_unavailable")
	return job


@router.post("", response_model=BeaconEnvelope, status_code=status.HTTP_201_CREATED)
async def create_beacon_endpoint(
	payload: BeaconCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BeaconService = Depends(get_beacon_service),
) -> BeaconEnvelope:
	try:
		return await service.create_beacon(auth_user, payload.raw_text)
	except PolicyError as exc:
		raise policy_http_error(exc) from None


@router.get("/mine", response_model=BeaconListResponse)
async def list_my_beacons_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BeaconService = Depends(get_beacon_service),
) -> BeaconListResponse:
	return await service.list_my_beacons(auth_user)


@router.get("/matches", response_model=MatchListResponse)
async def list_matches_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BeaconService = Depends(get_beacon_service),
) -> MatchListResponse:
	return await service.list_matches(auth_user)


@router.put("/matches/{match_id}/viewed")
async def mark_match_viewed_endpoint(
	match_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BeaconService = Depends(get_beacon_service),
) -> dict:
	try:
		await service.mark_match_viewed(auth_user, match_id)
	except PolicyError as exc:
		raise policy_http_error(exc) from None
	return {"ok": True}


@router.post("/match-runs", response_model=MatchRunResponse)
async def trigger_match_run_endpoint(
	_: AuthenticatedUser = Depends(get_admin_user),
	job: BeaconMatchJob = Depends(get_match_job),
) -> MatchRunResponse:
	summary = await job.run_once()
	return MatchRunResponse.from_summary(summary)


@router.delete("/{beacon_id}")
async def deactivate_beacon_endpoint(
	beacon_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BeaconService = Depends(get_beacon_service),
) -> dict:
	try:
		await service.deactivate_beacon(auth_user, beacon_id)
	except PolicyError as exc:
		raise policy_http_error(exc) from None
	return {"ok": True}
