from fastapi import APIRouter, Query

from pathprep.domain.models import GenerationRequest, QuestionSet, Roadmap, SkillResourceBundle
from pathprep.services.generation.generation_service import (
    delete_entity,
    generate_entity,
    get_entity,
    get_entity_by_key,
    list_recent_entities,
    refresh_entity,
)


router = APIRouter(prefix="/api", tags=["generation"])


@router.post("/roadmaps", response_model=Roadmap)
async def generate_roadmap(payload: GenerationRequest) -> Roadmap:
    return await generate_entity("roadmap", payload)


# /recent, /key/{...} 는 /{id} 보다 먼저 등록해야 매칭된다.
@router.get("/roadmaps/recent", response_model=list[Roadmap])
async def list_recent_roadmaps(limit: int = Query(default=10, ge=1, le=100)) -> list[Roadmap]:
    return await list_recent_entities("roadmap", limit)


@router.get("/roadmaps/key/{composite_key}", response_model=Roadmap)
async def get_roadmap_by_key(composite_key: str) -> Roadmap:
    return await get_entity_by_key("roadmap", composite_key)


@router.get("/roadmaps/{roadmap_id}", response_model=Roadmap)
async def get_roadmap(roadmap_id: str) -> Roadmap:
    return await get_entity("roadmap", roadmap_id)


@router.delete("/roadmaps/{roadmap_id}", status_code=204)
async def delete_roadmap(roadmap_id: str) -> None:
    await delete_entity("roadmap", roadmap_id)


@router.post("/roadmaps/{roadmap_id}/refresh", response_model=Roadmap)
async def refresh_roadmap(roadmap_id: str) -> Roadmap:
    return await refresh_entity("roadmap", roadmap_id)


@router.post("/questions", response_model=QuestionSet)
async def generate_questions(payload: GenerationRequest) -> QuestionSet:
    return await generate_entity("questions", payload)


@router.get("/questions/recent", response_model=list[QuestionSet])
async def list_recent_questions(limit: int = Query(default=10, ge=1, le=100)) -> list[QuestionSet]:
    return await list_recent_entities("questions", limit)


@router.get("/questions/key/{composite_key}", response_model=QuestionSet)
async def get_questions_by_key(composite_key: str) -> QuestionSet:
    return await get_entity_by_key("questions", composite_key)


@router.get("/questions/{question_set_id}", response_model=QuestionSet)
async def get_questions(question_set_id: str) -> QuestionSet:
    return await get_entity("questions", question_set_id)


@router.delete("/questions/{question_set_id}", status_code=204)
async def delete_questions(question_set_id: str) -> None:
    await delete_entity("questions", question_set_id)


@router.post("/questions/{question_set_id}/refresh", response_model=QuestionSet)
async def refresh_questions(question_set_id: str) -> QuestionSet:
    return await refresh_entity("questions", question_set_id)


@router.post("/skill-resources", response_model=SkillResourceBundle)
async def generate_skill_resources(payload: GenerationRequest) -> SkillResourceBundle:
    return await generate_entity("skill_resources", payload)


@router.get("/skill-resources/recent", response_model=list[SkillResourceBundle])
async def list_recent_skill_resources(limit: int = Query(default=10, ge=1, le=100)) -> list[SkillResourceBundle]:
    return await list_recent_entities("skill_resources", limit)


@router.get("/skill-resources/key/{composite_key}", response_model=SkillResourceBundle)
async def get_skill_resources_by_key(composite_key: str) -> SkillResourceBundle:
    return await get_entity_by_key("skill_resources", composite_key)


@router.get("/skill-resources/{bundle_id}", response_model=SkillResourceBundle)
async def get_skill_resources(bundle_id: str) -> SkillResourceBundle:
    return await get_entity("skill_resources", bundle_id)


@router.delete("/skill-resources/{bundle_id}", status_code=204)
async def delete_skill_resources(bundle_id: str) -> None:
    await delete_entity("skill_resources", bundle_id)


@router.post("/skill-resources/{bundle_id}/refresh", response_model=SkillResourceBundle)
async def refresh_skill_resources(bundle_id: str) -> SkillResourceBundle:
    return await refresh_entity("skill_resources", bundle_id)
