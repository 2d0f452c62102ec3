import sys
import tkinter as tk
from tkinter import scrolledtext

from chat_core.api.service import close_session, open_session
from chat_core.domain.conversation import ChangeEvent
from chat_core.engine.runner import ThreadedStreamRunner

THINKING = "thinking"
ACTION_LABELS = {"translate": "翻译", "correct": "纠错"}


class App:
    def __init__(self, root, conversation_id=None):
        self.root = root
        self.root.title("Chat")
        self._closed = False
        runner = ThreadedStreamRunner(self.post)
        self.session = open_session(conversation_id, runner=runner)
        self.pending = set()
        self._suppress_selection = False

        top = tk.Frame(root)
        top.pack(fill=tk.X)
        self.title_var = tk.StringVar(value=self.session.store.title)
        title_entry = tk.Entry(top, textvariable=self.title_var, justify=tk.CENTER, font=("TkDefaultFont", 14))
        title_entry.pack(fill=tk.X, padx=80)
        title_entry.bind("<Return>", self.on_title)
        title_entry.bind("<FocusOut>", self.on_title)

        main = tk.PanedWindow(root, orient=tk.HORIZONTAL)
        main.pack(fill=tk.BOTH, expand=True)
        left = tk.Frame(main)
        right = tk.Frame(main)
        main.add(left, minsize=200)
        main.add(right)

        tk.Label(left, text="消息").pack(anchor=tk.W)
        self.msg_list = tk.Listbox(left, height=14, exportselection=False)
        self.msg_list.pack(fill=tk.BOTH, expand=True)
        self.msg_list.bind("<<ListboxSelect>>", lambda e: self.refresh_controls())
        self.action_btn = tk.Button(left, text="翻译", command=self.on_transform, state=tk.DISABLED)
        self.action_btn.pack(fill=tk.X)

        self.chat = scrolledtext.ScrolledText(right, width=80, height=18, wrap=tk.WORD)
        self.chat.pack(fill=tk.BOTH, expand=True)
        self.chat.tag_config("user", foreground="#1a73e8")
        self.chat.tag_config("assistant", foreground="#34a853")
        self.chat.tag_config("auxiliary", foreground="#5f6368")
        self.chat.bind("<<Selection>>", self.on_selection)

        explain_row = tk.Frame(right)
        explain_row.pack(fill=tk.X)
        self.explain_btn = tk.Button(explain_row, text="解读选中内容", command=self.session.explain, state=tk.DISABLED)
        self.explain_btn.pack(side=tk.LEFT)
        self.explain_label = tk.Label(explain_row, text="", justify=tk.LEFT, anchor=tk.W, wraplength=600, bg="white")

        self.polish_frame = tk.Frame(right, relief=tk.GROOVE, borderwidth=1)
        self.polish_label = tk.Label(self.polish_frame, text="", justify=tk.LEFT, anchor=tk.W, wraplength=600)
        self.polish_label.pack(side=tk.LEFT, fill=tk.X, expand=True)
        tk.Button(self.polish_frame, text="放弃", command=self.session.discard_polish).pack(side=tk.RIGHT)
        tk.Button(self.polish_frame, text="采用", command=self.session.accept_polish).pack(side=tk.RIGHT)

        rt_in = tk.Frame(right)
        rt_in.pack(fill=tk.X, side=tk.BOTTOM)
        self.entry = tk.Text(rt_in, height=4)
        self.entry.pack(side=tk.LEFT, fill=tk.X, expand=True)
        self.entry.bind("<KeyRelease>", self.on_draft)
        self.polish_btn = tk.Button(rt_in, text="润色", command=self.session.polish)
        self.polish_btn.pack(side=tk.LEFT)
        self.send_btn = tk.Button(rt_in, text="发送", command=self.on_send)
        self.send_btn.pack(side=tk.LEFT)

        self.session.subscribe(self.on_change)
        self.root.protocol("WM_DELETE_WINDOW", self.on_close)
        self.render_messages()
        self.refresh_controls()

    # ---- 事件 ----

    def on_title(self, event=None):
        title = self.title_var.get().strip()
        if title and title != self.session.store.title:
            self.session.set_title(title)

    def on_draft(self, event=None):
        text = self.entry.get("1.0", tk.END).rstrip("\n")
        if text != self.session.draft:
            self.session.set_draft(text)

    def on_send(self):
        self.on_draft()
        self.session.send()

    def on_transform(self):
        idx = self.selected_index()
        if idx is None:
            return
        kind = self.session.available_transform(idx)
        if kind is None or idx in self.pending:
            return
        # auxiliary 只能写一次，流未结束前先禁用按钮
        self.pending.add(idx)
        if kind == "translate":
            self.session.translate(idx)
        else:
            self.session.correct(idx)
        self.refresh_controls()

    def on_selection(self, event=None):
        if self._suppress_selection:
            return
        ranges = self.chat.tag_ranges(tk.SEL)
        if not ranges:
            if self.session.selection is not None:
                self.session.select(None)
            return
        first, last = ranges[0], ranges[1]
        node = self._node_at(first)
        if node is None or node != self._node_at(f"{last} -1c"):
            self.session.select(None)
            return
        selected = self.chat.get(first, last)
        start, end = self.chat.tag_ranges(node)[:2]
        self.session.select(selected, self.chat.get(start, end))

    def on_change(self, event: ChangeEvent):
        if event.kind in ("append", "content", "auxiliary"):
            self.render_messages()
        elif event.kind == "complete" and event.index is not None:
            self.pending.discard(event.index)
        elif event.kind == "draft":
            current = self.entry.get("1.0", tk.END).rstrip("\n")
            if current != self.session.draft:
                self.entry.delete("1.0", tk.END)
                self.entry.insert("1.0", self.session.draft)
        elif event.kind == "title":
            self.title_var.set(self.session.store.title)
        if event.kind in ("flush", "complete") and event.index is not None:
            self.chat.see(tk.END)
        self.refresh_controls()

    def post(self, fn):
        # 窗口销毁后工作线程投递的回调直接丢弃
        if self._closed:
            return
        try:
            self.root.after(0, fn)
        except (RuntimeError, tk.TclError):
            pass

    def on_close(self):
        self.on_title()
        self.session.cancel_streams()
        self._closed = True
        close_session(self.session)
        self.root.destroy()

    # ---- 渲染 ----

    def selected_index(self):
        sel = self.msg_list.curselection()
        return sel[0] if sel else None

    def _node_at(self, index):
        for tag in self.chat.tag_names(index):
            if tag.startswith("node-"):
                return tag
        return None

    def render_messages(self):
        self._suppress_selection = True
        selected = self.selected_index()
        self.chat.delete("1.0", tk.END)
        self.msg_list.delete(0, tk.END)
        for idx, msg in enumerate(self.session.store.messages()):
            label = "用户" if msg.role == "user" else "助手"
            self.chat.insert(tk.END, f"[{label}]\n", msg.role)
            body = msg.content or (THINKING if msg.role == "assistant" else "")
            self.chat.insert(tk.END, body, (msg.role, f"node-{idx}-main"))
            self.chat.insert(tk.END, "\n")
            if msg.auxiliary:
                self.chat.insert(tk.END, "──────\n", "auxiliary")
                self.chat.insert(tk.END, msg.auxiliary, ("auxiliary", f"node-{idx}-aux"))
                self.chat.insert(tk.END, "\n")
            self.chat.insert(tk.END, "\n")
            self.msg_list.insert(tk.END, f"{idx}:{msg.role}:{msg.content[:24]}")
        if selected is not None and selected < self.msg_list.size():
            self.msg_list.selection_set(selected)
        self.root.after_idle(self._release_selection)

    def _release_selection(self):
        self._suppress_selection = False

    def refresh_controls(self):
        s = self.session
        self.send_btn.config(state=tk.NORMAL if s.can_send else tk.DISABLED)
        self.polish_btn.config(state=tk.NORMAL if s.can_polish else tk.DISABLED)

        idx = self.selected_index()
        kind = s.available_transform(idx) if idx is not None else None
        if kind is None or idx in self.pending:
            self.action_btn.config(state=tk.DISABLED)
        else:
            self.action_btn.config(state=tk.NORMAL, text=ACTION_LABELS[kind])

        self.explain_btn.config(state=tk.NORMAL if s.explain_available else tk.DISABLED)
        if s.explanation.visible:
            self.explain_label.config(text=self._buffer_text(s.explanation))
            self.explain_label.pack(side=tk.LEFT, fill=tk.X, expand=True)
        else:
            self.explain_label.pack_forget()

        if s.polish_buffer.visible:
            self.polish_label.config(text=self._buffer_text(s.polish_buffer))
            self.polish_frame.pack(fill=tk.X, side=tk.BOTTOM)
        else:
            self.polish_frame.pack_forget()

    @staticmethod
    def _buffer_text(buffer):
        # 流未结束时加省略号
        if buffer.streaming:
            return (buffer.text or THINKING) + " …"
        return buffer.text


def main(argv=None):
    args = sys.argv[1:] if argv is None else argv
    root = tk.Tk()
    App(root, conversation_id=args[0] if args else None)
    root.mainloop()


if __name__ == "__main__":
    main()
