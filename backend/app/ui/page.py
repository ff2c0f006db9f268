"""HTML shell that replays server-rendered frames onto a canvas."""

from __future__ import annotations

import html
import json
from typing import Final, Mapping, Optional

from backend.app.config import InteractionConfig, UIConfig

DEFAULT_WEBSOCKET_PATH: Final[str] = "/ws/view"


def _escape_script_value(value: str) -> str:
    """Escape a JSON string so it is safe for inline ``<script>`` embedding.

    Args:
        value: Raw JSON string produced by ``json.dumps``.

    Returns:
        The escaped string that will not prematurely close the surrounding script
        tag and preserves line separator characters.
    """

    return (
        value.replace("</", "<\\/")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def render_view_html(
    ui: UIConfig,
    interaction: Optional[InteractionConfig] = None,
    *,
    websocket_path: str = DEFAULT_WEBSOCKET_PATH,
) -> str:
    """Render the single-page view connected to the frame stream."""

    settings: Mapping[str, object] = {
        "websocketPath": websocket_path,
        "formControlTags": list((interaction or InteractionConfig()).form_control_tags),
    }
    payload = _escape_script_value(json.dumps(settings, separators=(",", ":"), ensure_ascii=False))
    return (
        _PAGE_TEMPLATE.replace("__TITLE__", html.escape(ui.title))
        .replace("__TAGLINE__", html.escape(ui.tagline))
        .replace("__SETTINGS__", payload)
    )


_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>__TITLE__</title>
    <style>
      :root {
        --mouse-x: 50%;
        --mouse-y: 50%;
      }
      html, body {
        margin: 0;
        height: 100%;
        overflow: hidden;
        font-family: Comfortaa, system-ui, sans-serif;
        background: radial-gradient(circle at var(--mouse-x) var(--mouse-y), #ffffff 0%, #f1f1f1 55%, #e6e6e6 100%);
      }
      #graph {
        position: fixed;
        inset: 0;
        width: 100vw;
        height: 100vh;
        touch-action: none;
        cursor: grab;
      }
      .scene {
        position: fixed;
        top: 22%;
        width: 100%;
        text-align: center;
        pointer-events: none;
      }
      .scene h1 { margin: 0; font-size: 3rem; font-weight: 600; color: #222; }
      .scene p { margin: 0.25rem 0 0; color: rgba(0, 0, 0, 0.5); }
      .input-container {
        position: fixed;
        left: 50%;
        bottom: 64px;
        transform: translateX(-50%);
        display: flex;
        gap: 0.5rem;
        width: min(560px, 90vw);
      }
      .input-container textarea {
        flex: 1;
        resize: none;
        border-radius: 1rem;
        border: 1px solid rgba(0, 0, 0, 0.15);
        padding: 0.75rem 1rem;
        font: inherit;
        background: rgba(255, 255, 255, 0.9);
      }
      .input-container button {
        border: none;
        border-radius: 9999px;
        padding: 0 1.1rem;
        background: #1a535c;
        color: #fff;
        font: inherit;
        cursor: pointer;
      }
      .input-container.loading button { opacity: 0.5; cursor: progress; }
      #status {
        position: fixed;
        top: 12px;
        right: 16px;
        font-size: 0.85rem;
        color: rgba(0, 0, 0, 0.55);
      }
      #clear-btn {
        position: fixed;
        bottom: 20px;
        left: 50%;
        transform: translateX(-50%);
        background: transparent;
        border: none;
        color: rgba(0, 0, 0, 0.4);
        font: inherit;
        font-size: 0.8rem;
        cursor: pointer;
      }
      #clear-btn:hover { color: rgba(0, 0, 0, 0.8); }
      [hidden] { display: none !important; }
    </style>
  </head>
  <body>
    <canvas id="graph"></canvas>
    <div class="scene">
      <h1>__TITLE__</h1>
      <p>__TAGLINE__</p>
    </div>
    <div id="status" role="status" aria-live="polite"></div>
    <form class="input-container" id="input-form">
      <textarea id="topic-input" rows="1" placeholder="What's on your mind?"></textarea>
      <button id="submit-btn" type="submit" aria-label="Build graph">&rarr;</button>
    </form>
    <button id="clear-btn" type="button" hidden>Clear Graph</button>
    <script>
      (function () {
        const settings = __SETTINGS__;
        const canvas = document.getElementById("graph");
        const ctx = canvas.getContext("2d");
        const form = document.getElementById("input-form");
        const input = document.getElementById("topic-input");
        const clearButton = document.getElementById("clear-btn");
        const statusLine = document.getElementById("status");
        const formTags = new Set(settings.formControlTags || []);
        let ratio = window.devicePixelRatio || 1;
        let socket = null;

        function send(message) {
          if (socket && socket.readyState === WebSocket.OPEN) {
            socket.send(JSON.stringify(message));
          }
        }

        function originTag(event) {
          const target = event.target;
          if (!target || !target.tagName) {
            return null;
          }
          const control = target.closest ? target.closest(Array.from(formTags).join(",")) : null;
          return (control || target).tagName.toLowerCase();
        }

        function resizeCanvas() {
          ratio = window.devicePixelRatio || 1;
          const width = Math.max(1, window.innerWidth);
          const height = Math.max(1, window.innerHeight);
          canvas.width = width * ratio;
          canvas.height = height * ratio;
          send({ type: "resize", width: width, height: height });
        }

        function replay(commands) {
          for (const cmd of commands) {
            switch (cmd.op) {
              case "clear":
                ctx.setTransform(ratio, 0, 0, ratio, 0, 0);
                ctx.clearRect(0, 0, cmd.width, cmd.height);
                break;
              case "transform":
                ctx.setTransform(ratio * cmd.scale, 0, 0, ratio * cmd.scale, ratio * cmd.x, ratio * cmd.y);
                break;
              case "line":
                ctx.beginPath();
                ctx.strokeStyle = cmd.stroke;
                ctx.lineWidth = cmd.width;
                ctx.moveTo(cmd.x1, cmd.y1);
                ctx.lineTo(cmd.x2, cmd.y2);
                ctx.stroke();
                break;
              case "polygon":
                if (!cmd.points.length) {
                  break;
                }
                ctx.beginPath();
                ctx.fillStyle = cmd.fill;
                ctx.moveTo(cmd.points[0][0], cmd.points[0][1]);
                for (let index = 1; index < cmd.points.length; index += 1) {
                  ctx.lineTo(cmd.points[index][0], cmd.points[index][1]);
                }
                ctx.closePath();
                ctx.fill();
                break;
              case "circle":
                ctx.beginPath();
                ctx.fillStyle = cmd.fill;
                ctx.arc(cmd.x, cmd.y, cmd.r, 0, Math.PI * 2);
                ctx.fill();
                break;
              case "text":
                ctx.font = cmd.font;
                ctx.fillStyle = cmd.fill;
                ctx.textAlign = cmd.align;
                ctx.textBaseline = cmd.baseline;
                ctx.fillText(cmd.text, cmd.x, cmd.y);
                break;
              default:
                break;
            }
          }
        }

        function setLoading(loading) {
          form.classList.toggle("loading", loading);
          input.disabled = loading;
          statusLine.textContent = loading ? "Thinking..." : "";
        }

        function handleMessage(message) {
          if (message.type === "frame") {
            replay(message.commands || []);
            if (message.spotlight) {
              document.documentElement.style.setProperty("--mouse-x", message.spotlight.mouse_x + "%");
              document.documentElement.style.setProperty("--mouse-y", message.spotlight.mouse_y + "%");
            }
            canvas.style.cursor = message.dragging ? "grabbing" : "grab";
            return;
          }
          if (message.type === "status") {
            if (message.state === "loading") {
              setLoading(true);
              clearButton.hidden = true;
            } else if (message.state === "replaced") {
              setLoading(false);
              clearButton.hidden = false;
            } else if (message.state === "error") {
              setLoading(false);
              statusLine.textContent = "Error generating graph. Please try again.";
            } else if (message.state === "cleared") {
              clearButton.hidden = true;
            } else if (message.state === "ready") {
              clearButton.hidden = !message.has_labels;
            }
            return;
          }
          if (message.type === "error") {
            statusLine.textContent = message.message || "Error";
          }
        }

        function connect() {
          const scheme = window.location.protocol === "https:" ? "wss://" : "ws://";
          socket = new WebSocket(scheme + window.location.host + settings.websocketPath);
          socket.addEventListener("open", resizeCanvas);
          socket.addEventListener("message", (event) => handleMessage(JSON.parse(event.data)));
          socket.addEventListener("close", () => window.setTimeout(connect, 1000));
        }

        function pointerMessage(kind, event) {
          const rect = canvas.getBoundingClientRect();
          return {
            type: "pointer",
            kind: kind,
            x: event.clientX - rect.left,
            y: event.clientY - rect.top,
            pointer_id: event.pointerId || 0,
            pointer_type: event.pointerType || "mouse",
            button: event.button === undefined || event.button < 0 ? 0 : event.button,
            target_tag: originTag(event),
          };
        }

        canvas.addEventListener("pointerdown", (event) => {
          if (canvas.setPointerCapture) {
            try {
              canvas.setPointerCapture(event.pointerId);
            } catch (error) {}
          }
          send(pointerMessage("down", event));
        });
        window.addEventListener("pointermove", (event) => send(pointerMessage("move", event)));
        window.addEventListener("pointerup", (event) => send(pointerMessage("up", event)));
        window.addEventListener("pointercancel", (event) => send(pointerMessage("cancel", event)));
        canvas.addEventListener(
          "wheel",
          (event) => {
            event.preventDefault();
            const rect = canvas.getBoundingClientRect();
            send({
              type: "wheel",
              x: event.clientX - rect.left,
              y: event.clientY - rect.top,
              delta_y: event.deltaY,
              target_tag: originTag(event),
            });
          },
          { passive: false },
        );

        form.addEventListener("submit", (event) => {
          event.preventDefault();
          const text = input.value;
          if (!text.trim()) {
            return;
          }
          send({ type: "submit", input: text });
          input.value = "";
        });
        input.addEventListener("keydown", (event) => {
          if (event.key === "Enter" && !event.shiftKey) {
            event.preventDefault();
            form.requestSubmit();
          }
        });
        clearButton.addEventListener("click", () => {
          send({ type: "clear" });
          input.value = "";
        });

        window.addEventListener("resize", resizeCanvas);
        connect();
      })();
    </script>
  </body>
</html>
"""


__all__ = ["DEFAULT_WEBSOCKET_PATH", "render_view_html"]
