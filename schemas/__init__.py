# Schemas package for Pydantic models
from .user import UserPublic, AdminUserRead, public_user
from .auth import SignupRequest, LoginRequest
from .subject import SubjectCreate, SubjectRead, SubjectUpdate, SubjectDataWrite, ReviewCreate
from .sharing import ShareCreate, ExamHistorySave, ExamHistoryRename
from .promo import PromoCodeCreate, PromoCodeUpdate, PromoCodeRedeem
from .admin import (
    AdminUserUpdate, AdminApplyPromoCode, AdminUserDelete, SubscriptionUpdate,
    FeedbackCreate, FeedbackUpdate, FeedbackDelete
)
from .generation import (
    MainTopics, TopicMeta, LessonMeta, LessonRef, LessonStreamRequest,
    FlashcardRequest, LessonFlashcardRequest, Flashcard,
    McQuizRequest, QuizAnswer, CheckQuizRequest,
    TopicSuggestRequest, TopicSuggestion, DetectNameRequest, QuickSummaryRequest,
    SurgeQuizRequest, SurgeQuizCheckRequest, TextToSpeechRequest,
    ChatMessage, ChatRequest, PracticeProblemsRequest, NodePlanRequest
)

__all__ = [
    "UserPublic", "AdminUserRead", "public_user",
    "SignupRequest", "LoginRequest",
    "SubjectCreate", "SubjectRead", "SubjectUpdate", "SubjectDataWrite", "ReviewCreate",
    "ShareCreate", "ExamHistorySave", "ExamHistoryRename",
    "PromoCodeCreate", "PromoCodeUpdate", "PromoCodeRedeem",
    "AdminUserUpdate", "AdminApplyPromoCode", "AdminUserDelete", "SubscriptionUpdate",
    "FeedbackCreate", "FeedbackUpdate", "FeedbackDelete",
    "MainTopics", "TopicMeta", "LessonMeta", "LessonRef", "LessonStreamRequest",
    "FlashcardRequest", "LessonFlashcardRequest", "Flashcard",
    "McQuizRequest", "QuizAnswer", "CheckQuizRequest",
    "TopicSuggestRequest", "TopicSuggestion", "DetectNameRequest", "QuickSummaryRequest",
    "SurgeQuizRequest", "SurgeQuizCheckRequest", "TextToSpeechRequest",
    "ChatMessage", "ChatRequest", "PracticeProblemsRequest", "NodePlanRequest",
]
