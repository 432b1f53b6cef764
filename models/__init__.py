from .models import (
    User, UserSession, Subject, SubjectData, SharedCourse,
    PromoCode, PromoCodeRedemption, UsageStats, ExamSnipeHistory, Feedback,
    UserRoleEnum, SubscriptionLevelEnum, USER_OWNED_MODELS, utcnow, as_utc
)
