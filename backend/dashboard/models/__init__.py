from .user import User, USER_ROLES
from .billing import Subscription, UserCredits, CreditTransaction
from .mail import MailAccount, MailOAuthToken
from .github_account import GitHubAccount
from .news import NewsSource, NewsItem, UserNewsSourceExclusion, Notification, SystemSetting
from .chat import ChatConversation, ChatMessage, AgentRun
from .theme import UserTheme
from .timer import Timer
from .expenditure import ExpenditureSource
