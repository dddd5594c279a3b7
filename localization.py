class Translator:
    def __init__(self) -> None:
        self.language = "en"
        self.translations = {
            "en": {
                "ai_not_configured": "AI features are not configured. Please set the GEMINI_API_KEY in your environment.",
                "ai_unavailable": "Sorry, I'm having trouble connecting to my brain right now. Please try again later.",
                "ai_greeting": "Hello! I'm your AI Fitness Coach. Ask me anything about your workout plans, nutrition, or how to improve your performance.",
                "import_plan_success": "Plan \"{plan_name}\" imported successfully!",
                "import_plan_error": "Failed to import plan: {error}",
                "import_invalid_format": "Invalid JSON format. Must include a 'name' and an 'exercises' array.",
                "import_no_exercises": "No valid exercises found in the imported file.",
                "import_invalid_value": "Unrecognized {field} \"{value}\" for exercise \"{name}\".",
                "import_create_failed": "Failed to create new exercise \"{name}\". Import aborted.",
                "import_save_failed": "The plan could not be saved.",
                "unknown_exercise": "Unknown Exercise",
            },
            "it": {
                "ai_not_configured": "Le funzionalità AI non sono configurate. Imposta GEMINI_API_KEY nel tuo ambiente.",
                "ai_unavailable": "Spiacente, ho problemi di connessione in questo momento. Riprova più tardi.",
                "ai_greeting": "Ciao! Sono il tuo AI Fitness Coach. Chiedimi qualsiasi cosa sui tuoi piani di allenamento, sull'alimentazione o su come migliorare le tue prestazioni.",
                "import_plan_success": "Piano \"{plan_name}\" importato con successo!",
                "import_plan_error": "Importazione del piano non riuscita: {error}",
                "import_invalid_format": "Formato JSON non valido. Deve includere un 'name' e un array 'exercises'.",
                "import_no_exercises": "Nessun esercizio valido trovato nel file importato.",
                "import_invalid_value": "Valore {field} \"{value}\" non riconosciuto per l'esercizio \"{name}\".",
                "import_create_failed": "Impossibile creare il nuovo esercizio \"{name}\". Importazione annullata.",
                "import_save_failed": "Impossibile salvare il piano.",
                "unknown_exercise": "Esercizio sconosciuto",
                "Chest": "Petto",
                "Back": "Schiena",
                "Biceps": "Bicipiti",
                "Triceps": "Tricipiti",
                "Legs": "Gambe",
                "Shoulders": "Spalle",
                "Cardio": "Cardio",
                "Core": "Addominali",
                "Strength": "Forza",
            },
        }

    def set_language(self, lang: str) -> None:
        if lang in self.translations:
            self.language = lang

    def gettext(self, key: str, **options) -> str:
        text = self.translations.get(self.language, {}).get(
            key, self.translations["en"].get(key, key)
        )
        if options:
            text = text.format(**options)
        return text

    def category(self, category) -> str:
        return self.gettext(getattr(category, "value", category))

translator = Translator()
