from core.config import settings


class Messages:
    _MESSAGES = {
        # Notifications
        "ANSWER_SAVED": {
            "ID": "Jawaban tersimpan",
            "EN": "Answer saved",
        },
        "ANSWER_SAVE_FAILED": {
            "ID": "Jawaban belum tersimpan. Anda bisa melanjutkan, kami akan mencoba lagi.",
            "EN": "Your answer was not saved yet. You can continue, we will retry.",
        },
        "UNSAVED_ANSWERS": {
            "ID": "{count} jawaban belum tersimpan di server.",
            "EN": "{count} answers are not saved on the server.",
        },
        "START_FAILED": {
            "ID": "Gagal memulai kuis. Silakan coba lagi.",
            "EN": "Failed to start the quiz. Please try again.",
        },
        "RESUME_FAILED": {
            "ID": "Gagal melanjutkan kuis. Silakan coba lagi.",
            "EN": "Failed to resume the quiz. Please try again.",
        },
        "SUBMIT_FAILED": {
            "ID": "Gagal mengumpulkan kuis. Silakan coba lagi.",
            "EN": "Failed to submit the quiz. Please try again.",
        },
        "LOAD_FAILED": {
            "ID": "Gagal memuat data kuis. Silakan coba lagi.",
            "EN": "Failed to load the quiz. Please try again.",
        },
        "REVIEW_FAILED": {
            "ID": "Gagal memuat review. Silakan coba lagi.",
            "EN": "Failed to load the review. Please try again.",
        },
        "QUIZ_SUBMITTED": {
            "ID": "Kuis berhasil dikumpulkan!",
            "EN": "Quiz submitted successfully!",
        },
        "QUIZ_AUTO_SUBMITTED": {
            "ID": "Waktu habis. Kuis dikumpulkan otomatis.",
            "EN": "Time is up. The quiz was submitted automatically.",
        },
        "ATTEMPT_ALREADY_SUBMITTED": {
            "ID": "Kuis ini sudah dikumpulkan.",
            "EN": "This quiz has already been submitted.",
        },
        "ATTEMPT_NOT_FOUND": {
            "ID": "Percobaan kuis tidak ditemukan. Sesi ditutup.",
            "EN": "Quiz attempt not found. The session was closed.",
        },
        "ATTEMPTS_EXHAUSTED": {
            "ID": "Anda sudah menggunakan semua attempt.",
            "EN": "You have used all attempts.",
        },
        "CONFIRM_NEW_ATTEMPT": {
            "ID": "Masih ada percobaan yang belum selesai. Mulai percobaan baru?",
            "EN": "An attempt is still in progress. Start a new attempt?",
        },
        "CONFIRM_SUBMIT": {
            "ID": "Yakin ingin mengumpulkan kuis? Jawaban tidak bisa diubah lagi.",
            "EN": "Submit the quiz? Answers cannot be changed afterwards.",
        },

        # Summary screen
        "QUIZ_SUMMARY": {
            "ID": "<b>{name}</b>\n\nDurasi: {duration}\nJumlah soal: {questions}\nPassing grade: {passing}\nJumlah attempt: {limit} kali",
            "EN": "<b>{name}</b>\n\nDuration: {duration}\nQuestions: {questions}\nPassing score: {passing}\nAttempts allowed: {limit}",
        },
        "UNTIMED": {
            "ID": "Tanpa batas waktu",
            "EN": "No time limit",
        },
        "MINUTES": {
            "ID": "{minutes} menit",
            "EN": "{minutes} minutes",
        },
        "SCHEDULE": {
            "ID": "Jadwal: {start} - {end}",
            "EN": "Schedule: {start} - {end}",
        },
        "ATTEMPTS_REMAINING": {
            "ID": "Anda memiliki {count} attempt tersisa.",
            "EN": "You have {count} attempts left.",
        },
        "PENDING_ATTEMPT": {
            "ID": "Percobaan {number} belum selesai • Dimulai {started}",
            "EN": "Attempt {number} is not finished • Started {started}",
        },
        "HISTORY_ROW": {
            "ID": "Percobaan {number} • {ended} • Skor: {score} {status}",
            "EN": "Attempt {number} • {ended} • Score: {score} {status}",
        },
        "PASSED": {
            "ID": "✅ Lulus",
            "EN": "✅ Passed",
        },
        "FAILED": {
            "ID": "❌ Belum lulus",
            "EN": "❌ Not passed",
        },
        "NOT_SPECIFIED": {
            "ID": "Tidak ditentukan",
            "EN": "Not specified",
        },
        "LAST_RESULT": {
            "ID": "Skor terakhir: {score} {status}",
            "EN": "Last score: {score} {status}",
        },

        # Buttons
        "START_BTN": {
            "ID": "▶️ Mulai Kuis",
            "EN": "▶️ Start Quiz",
        },
        "RESUME_BTN": {
            "ID": "⏯ Lanjutkan Kuis",
            "EN": "⏯ Resume Quiz",
        },
        "NEW_ATTEMPT_BTN": {
            "ID": "🔄 Mulai Percobaan Baru ({count} tersisa)",
            "EN": "🔄 Start New Attempt ({count} left)",
        },
        "CONFIRM_BTN": {
            "ID": "✅ Ya",
            "EN": "✅ Yes",
        },
        "CANCEL_BTN": {
            "ID": "❌ Batal",
            "EN": "❌ Cancel",
        },
        "REVIEW_BTN": {
            "ID": "🔍 Review percobaan {number}",
            "EN": "🔍 Review attempt {number}",
        },
        "PREV_BTN": {
            "ID": "⬅️ Sebelumnya",
            "EN": "⬅️ Previous",
        },
        "NEXT_BTN": {
            "ID": "Berikutnya ➡️",
            "EN": "Next ➡️",
        },
        "SUBMIT_BTN": {
            "ID": "📤 Submit Kuis",
            "EN": "📤 Submit Quiz",
        },
        "FLAG_BTN": {
            "ID": "🚩 Tandai ragu-ragu",
            "EN": "🚩 Mark as unsure",
        },
        "UNFLAG_BTN": {
            "ID": "🚩 Ditandai Ragu-ragu",
            "EN": "🚩 Marked as unsure",
        },
        "BACK_BTN": {
            "ID": "↩️ Kembali",
            "EN": "↩️ Back",
        },

        # Question screen
        "QUESTION_HEADER": {
            "ID": "Soal {number} / {total}",
            "EN": "Question {number} / {total}",
        },
        "TIME_LEFT": {
            "ID": "⏱ Sisa waktu {time}",
            "EN": "⏱ Time left {time}",
        },
        "TEXT_ANSWER_PROMPT": {
            "ID": "Tulis jawaban Anda sebagai pesan.",
            "EN": "Send your answer as a message.",
        },
        "CURRENT_ANSWER": {
            "ID": "Jawaban Anda: {answer}",
            "EN": "Your answer: {answer}",
        },
        "QUESTION_LOADING": {
            "ID": "Memuat soal...",
            "EN": "Loading question...",
        },
        "QUIZ_NOT_OPEN": {
            "ID": "Tidak ada kuis yang sedang dibuka. Gunakan /quiz <id>.",
            "EN": "No quiz is open. Use /quiz <id>.",
        },
        "QUIZ_ID_REQUIRED": {
            "ID": "Gunakan: /quiz <id konten>",
            "EN": "Usage: /quiz <content id>",
        },

        # Review
        "REVIEW_HEADER": {
            "ID": "Review jawaban • Soal {number} dari {total}",
            "EN": "Answer review • Question {number} of {total}",
        },
        "REVIEW_CORRECT": {
            "ID": "Jawaban Anda benar",
            "EN": "Your answer is correct",
        },
        "REVIEW_INCORRECT": {
            "ID": "Jawaban Anda salah",
            "EN": "Your answer is incorrect",
        },
        "REVIEW_UNANSWERED": {
            "ID": "Belum dijawab",
            "EN": "Not answered",
        },
        "REVIEW_UNGRADED": {
            "ID": "Menunggu penilaian",
            "EN": "Awaiting grading",
        },
        "REVIEW_YOUR_ANSWER": {
            "ID": "Jawaban Anda: {answer}",
            "EN": "Your answer: {answer}",
        },
        "REVIEW_NO_ANSWER": {
            "ID": "Anda tidak menjawab soal ini.",
            "EN": "You did not answer this question.",
        },
        "REVIEW_CORRECT_ANSWER": {
            "ID": "Jawaban benar: {answer}",
            "EN": "Correct answer: {answer}",
        },
    }

    @classmethod
    def get(cls, key: str, lang: str = None) -> str:
        lang = (lang or settings.DEFAULT_LANGUAGE).upper()
        entry = cls._MESSAGES.get(key)
        if not entry:
            return key
        return entry.get(lang) or entry.get("ID", key)
