"""
processor 패키지 — 저장소 레코드 정제 모듈

파이프라인:
    crawler (GitHub API 원시 딕셔너리)
        └─► processor.cleaner.clean_repository_data()
                ├─ RawRepository 관대 파싱 (processor.models)
                ├─ description HTML 제거 / homepage URL 검증
                ├─ (선택) 링크·이미지 추출
                └─ RepositoryRecord 생성
        └─► processor.validator.validate_repository()   적재 가능 여부
"""
