"""
Session/state engine for the BloomOut companion app.

Modules:
- app: BloomOut composition root, screen navigation, logging setup
- session: ConversationSession + SessionOrchestrator (persona chats over a provider handle)
- agents / scenarios: personas, practice scenarios, profile personalization
- reviewer: AnalysisService grading practice runs and reflecting on journal entries
- achievements: rule table, AchievementEngine, unlock popups
- progress: persisted Progress document
- journal: JournalStore/JournalService with doodle and image layers
- relief: breathing exercise and vent box
- timers: screen scopes and cancellable countdowns
- preferences: profile, theme, mood, avatar, first launch
- provider / llm: AI provider capability via LangChain
- storage / errors / states: key-value persistence, error taxonomy, shared types
"""
